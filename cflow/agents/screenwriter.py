"""Screenwriter and Outline Reviewer Agents for the narrative-outline pipeline.

The screenwriter drafts (and later revises) a ten-chapter outline in Markdown.
The reviewer scores a draft 0-100 and explains what to fix.
"""

import logging
import re

from cflow.errors import ExternalCapabilityError, ParseError
from cflow.llm import resolve_node_params
from cflow.state import PipelineState
from cflow.utils.parsing import decode_model_json

logger = logging.getLogger(__name__)

SCREENWRITER_PROMPT = """\
You are a senior web-novel screenwriter who builds gripping story structures.

Your job:
1. Turn the user's idea into a 10-chapter plot outline
2. Give every chapter clear plot progression and a climax beat
3. Keep the overall pacing suited to serialized web fiction
4. Revise the outline according to reviewer feedback

Format: Markdown. For every chapter give the chapter title, a plot summary, key events and the \
climax beat, about 200-300 words per chapter. Example:

# Chapter 1: ...
**Summary**: ...
**Key events**:
- ...
**Climax beat**: ...
"""

REVIEWER_PROMPT = """\
You are a demanding editor reviewing a 10-chapter web-novel outline against the author's idea.

Judge: fidelity to the idea, plot coherence, chapter-level climax beats, pacing, and \
originality. Score the outline from 0 to 100, where 80 or more means ready to write.

Respond ONLY with a JSON object:
{"score": integer 0-100, "feedback": "specific, actionable revision notes"}
"""

_SCORE_PATTERNS = [
    re.compile(r"【总分】\s*[:：]\s*(\d+)"),
    re.compile(r"总分\s*[:：]\s*(\d+)"),
    re.compile(r"total\s+score\W{0,3}(\d+)", re.IGNORECASE),
    re.compile(r"\bscore\W{0,3}(\d+)\s*/\s*100", re.IGNORECASE),
]


def _clamp(score: int) -> int:
    return max(0, min(100, score))


def parse_review(reply: str) -> tuple[int, str]:
    """Extract (score, feedback) from a reviewer reply.

    Prefers the JSON contract; falls back to a "Total score: NN" style line.
    An unreadable score counts as 0 so the draft can never win on a parse slip.
    """
    try:
        data = decode_model_json(reply, expect=dict)
    except ParseError:
        data = None

    if data is not None and "score" in data:
        try:
            return _clamp(int(data["score"])), str(data.get("feedback") or "")
        except (TypeError, ValueError):
            logger.warning("Reviewer returned non-numeric score %r.", data["score"])

    for pattern in _SCORE_PATTERNS:
        match = pattern.search(reply or "")
        if match:
            return _clamp(int(match.group(1))), reply

    logger.warning("Could not parse an outline score from the reviewer reply; using 0.")
    return 0, reply or ""


def _format_history(state: PipelineState) -> str:
    return "\n".join(f"{m['role']}: {m['content']}" for m in state.get("chat_history", []))


def build_generate_prompt(state: PipelineState) -> str:
    history = _format_history(state)
    prompt = f"Write a 10-chapter plot outline for this idea:\n\n**Idea**: {state['source_text']}\n"
    if history:
        prompt += f"\n**Earlier discussion**:\n{history}\n"
    prompt += (
        "\nMake sure that:\n"
        "1. The plot is coherent and compelling\n"
        "2. Every chapter has a clear climax beat\n"
        "3. The pacing alternates tension and release\n"
        "4. It reads like serialized web fiction"
    )
    return prompt


def build_revise_prompt(state: PipelineState) -> str:
    return (
        "Revise the outline according to the reviewer's feedback.\n\n"
        f"**Current outline**:\n{state.get('candidate', '')}\n\n"
        f"**Reviewer feedback**:\n{state.get('review_feedback') or ''}\n\n"
        "Fix the problems raised, keep what already works, and return the full revised outline."
    )


def _draft(state: PipelineState, ctx, node_type: str, user_prompt: str) -> dict:
    params = resolve_node_params(state, node_type)
    iteration = state.get("iteration_count", 0) + 1
    try:
        outline = ctx.llm.invoke(params.get("system_prompt") or SCREENWRITER_PROMPT, user_prompt, params)
        if not outline or not outline.strip():
            raise ParseError("Screenwriter returned an empty outline.")
    except (ExternalCapabilityError, ParseError) as exc:
        logger.error("Outline draft %d failed: %s", iteration, exc)
        return {"iteration_count": iteration, "error_message": f"Outline drafting failed: {exc}"}

    logger.info("Outline draft %d written (%d chars)", iteration, len(outline))
    return {"candidate": outline.strip(), "iteration_count": iteration}


def generate_outline_node(state: PipelineState, ctx) -> dict:
    """Screenwriter node: first draft from the idea and chat history."""
    return _draft(state, ctx, "generate_outline", build_generate_prompt(state))


def revise_outline_node(state: PipelineState, ctx) -> dict:
    """Screenwriter node: rewrite the current draft against the reviewer's feedback."""
    return _draft(state, ctx, "revise_outline", build_revise_prompt(state))


def review_outline_node(state: PipelineState, ctx) -> dict:
    """Outline reviewer node. Tracks the best-scoring draft across iterations."""
    params = resolve_node_params(state, "review_outline")
    user_prompt = (
        f"## Author's Idea\n{state['source_text']}\n\n"
        f"## Outline Draft\n{state.get('candidate', '')}"
    )
    try:
        reply = ctx.llm.invoke(params.get("system_prompt") or REVIEWER_PROMPT, user_prompt, params)
    except ExternalCapabilityError as exc:
        logger.error("Outline review failed: %s", exc)
        return {"error_message": f"Outline review failed: {exc}"}

    score, feedback = parse_review(reply)
    logger.info("Outline draft %d scored %d/100", state.get("iteration_count", 0), score)

    update = {"review_score": score, "review_feedback": feedback}
    best_score = state.get("best_score")
    if best_score is None or score > best_score:
        update["best_candidate"] = state.get("candidate", "")
        update["best_score"] = score
    return update
