"""Question Author Agent — parses existing questions or writes new ones from notes.

Both nodes ask for a JSON array of question objects:
[
  {
    "type": "single_choice | multiple_choice | true_false",
    "question": "string",
    "options": ["A. ...", "B. ..."],
    "answer": "A" or ["A", "C"],
    "explanation": "string"
  }
]

On a revise loop the previous batch and the reviewer's revision note are
added to the prompt. A reply that does not decode is recorded as an error;
there is no re-prompt, the human feedback loop owns retries.
"""

import json
import logging

from cflow.errors import ExternalCapabilityError, ParseError
from cflow.llm import resolve_node_params
from cflow.state import QUIZ_KINDS, PipelineState, QuizItem
from cflow.utils.guidance import load_guidance
from cflow.utils.parsing import decode_model_json

logger = logging.getLogger(__name__)

# Map common LLM kind deviations to valid kinds
_KIND_ALIASES = {
    "single": "single_choice",
    "singlechoice": "single_choice",
    "single_select": "single_choice",
    "choice": "single_choice",
    "mcq": "single_choice",
    "multiple": "multiple_choice",
    "multi": "multiple_choice",
    "multi_choice": "multiple_choice",
    "multiplechoice": "multiple_choice",
    "multiple_select": "multiple_choice",
    "truefalse": "true_false",
    "true/false": "true_false",
    "tf": "true_false",
    "boolean": "true_false",
    "judge": "true_false",
    "judgement": "true_false",
    "judgment": "true_false",
}

_ITEM_SCHEMA = """\
Each question must be an object with:
- "type": "single_choice" | "multiple_choice" | "true_false"
- "question": the question stem
- "options": array of options, e.g. ["A. ...", "B. ..."] (["True", "False"] for true_false)
- "answer": the correct option letter(s), e.g. "A" or ["A", "C"]
- "explanation": why the answer is correct

Respond ONLY with the JSON array. No markdown fences, no commentary."""

PARSER_SYSTEM_PROMPT = f"""\
You are a question-parsing assistant. Convert the raw exam text you are given into structured \
JSON, one object per question, keeping the original wording, options and answers. Do not invent \
questions that are not in the text.

{_ITEM_SCHEMA}
"""

GENERATOR_SYSTEM_PROMPT = f"""\
You are a question-writing assistant. Write quiz questions that test the key knowledge in the \
study notes you are given. Mix question types where the material allows it.

{_ITEM_SCHEMA}
"""


def _normalize_kind(value) -> str:
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if key in QUIZ_KINDS:
        return key
    return _KIND_ALIASES.get(key, "unknown")


def _normalize_answer(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v).strip() for v in value)
    return str(value).strip()


def normalize_item(raw: dict, index: int) -> QuizItem:
    """Convert one model question object into a QuizItem.

    Accepts both the prompt's keys (type/question/answer) and QuizItem keys
    (kind/prompt/correct_answer). Raises ParseError if the stem is missing.
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Question {index} is not an object.")
    prompt = raw.get("question", raw.get("prompt"))
    if not isinstance(prompt, str) or not prompt.strip():
        raise ParseError(f"Question {index} missing required field 'question'.")

    options = raw.get("options") or []
    if not isinstance(options, list):
        raise ParseError(f"Question {index} has non-list 'options'.")

    item: QuizItem = {
        "kind": _normalize_kind(raw.get("type", raw.get("kind"))),
        "prompt": prompt.strip(),
        "options": [str(o).strip() for o in options],
        "correct_answer": _normalize_answer(raw.get("answer", raw.get("correct_answer"))),
    }
    if raw.get("explanation"):
        item["explanation"] = str(raw["explanation"]).strip()
    return item


def parse_items(reply: str) -> list[QuizItem]:
    """Decode a model reply into QuizItems. Raises ParseError on any contract violation."""
    data = decode_model_json(reply, expect=(list, dict))
    if isinstance(data, dict):
        # Tolerate {"questions": [...]} and a bare single question object
        data = data["questions"] if isinstance(data.get("questions"), list) else [data]
    if not data:
        raise ParseError("Model returned no questions.")
    return [normalize_item(raw, i) for i, raw in enumerate(data, 1)]


def _revision_section(state: PipelineState) -> str:
    note = state.get("revision_note")
    if not note:
        return ""
    previous = json.dumps(state.get("generated_items", []), ensure_ascii=False, indent=2)
    return (
        f"\n\n## Previous Output\n```json\n{previous}\n```\n\n"
        f"## Revision Requested by the Reviewer\n{note}\n"
        "Apply this correction to the previous output and return the full corrected array."
    )


def build_parse_prompt(state: PipelineState) -> str:
    """Build the parser's user prompt: the raw questions, plus the revision context if any."""
    return f"## Raw Question Text\n{state['source_text']}" + _revision_section(state)


def build_generate_prompt(state: PipelineState) -> str:
    """Build the generator's user prompt: the notes, item count and revision context if any."""
    count = state.get("num_requested_items", 15)
    return (
        f"Write exactly {count} questions from the following notes.\n\n"
        f"## Study Notes\n{state['source_text']}" + _revision_section(state)
    )


def _system_prompt(default: str, params: dict, subject: str | None) -> str:
    system_content = params.get("system_prompt") or default
    guidance = load_guidance(subject)
    if guidance:
        system_content += f"\n\n## Item-Writing Guidelines\n{guidance}"
    return system_content


def _author(state: PipelineState, ctx, node_type: str, default_prompt: str, user_prompt: str, verb: str) -> dict:
    params = resolve_node_params(state, node_type)
    system_content = _system_prompt(default_prompt, params, state.get("subject_tag"))
    attempt = state.get("retry_count", 0) + 1

    try:
        reply = ctx.llm.invoke(system_content, user_prompt, params)
        items = parse_items(reply)
    except (ExternalCapabilityError, ParseError) as exc:
        logger.error("Question %s failed (attempt %d): %s", verb, attempt, exc)
        return {
            "generated_items": [],
            "retry_count": attempt,
            "error_message": f"Question {verb} failed: {exc}",
        }

    logger.info("Question %s produced %d items (attempt %d)", verb, len(items), attempt)
    return {"generated_items": items, "retry_count": attempt, "score_distribution": None}


def parse_questions_node(state: PipelineState, ctx) -> dict:
    """Parser node: structure the questions already present in the source text."""
    return _author(
        state, ctx, "parse_questions", PARSER_SYSTEM_PROMPT, build_parse_prompt(state), "parsing",
    )


def generate_questions_node(state: PipelineState, ctx) -> dict:
    """Generator node: write num_requested_items new questions from notes."""
    update = _author(
        state, ctx, "generate_questions", GENERATOR_SYSTEM_PROMPT, build_generate_prompt(state), "generation",
    )
    requested = state.get("num_requested_items")
    items = update["generated_items"]
    if requested and len(items) > requested:
        logger.warning("Generator returned %d items, keeping the first %d.", len(items), requested)
        update["generated_items"] = items[:requested]
    elif requested and items and len(items) < requested:
        logger.warning("Generator returned %d items, %d were requested.", len(items), requested)
    return update
