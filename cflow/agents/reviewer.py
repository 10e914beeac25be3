"""Reviewer Agent — scores the whole question batch in one pass.

Seeing the full set lets the model balance weight and difficulty across it.

Required output schema:
{
  "questions": [ { ...question..., "score": integer } ],
  "scoreDistribution": {                      // optional
    "single_choice": {"perQuestion": int, "total": int},
    ...
  }
}
"""

import json
import logging

from cflow.config import get_config
from cflow.errors import ExternalCapabilityError, ParseError
from cflow.llm import resolve_node_params
from cflow.state import PipelineState
from cflow.utils.parsing import decode_model_json

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are the Reviewer in a quiz-generation pipeline. You receive a complete batch of quiz \
questions as a JSON array. Assign each question a point value so that the batch totals exactly \
{total} points.

Weighting guidance:
- single_choice: typically 3-5 points
- multiple_choice: typically 5-8 points (harder)
- true_false: typically 2-3 points
Harder questions within a type may earn more. Balance the whole set; do not score questions in \
isolation.

You MUST respond with valid JSON matching this exact schema:
{{
  "questions": [ the same questions, in the same order, each with an added integer "score" ],
  "scoreDistribution": {{
    "<type>": {{"perQuestion": integer, "total": integer}}
  }}
}}

Do not add, remove or reorder questions. Respond ONLY with the JSON object. No markdown fences, \
no commentary.
"""


def _validate_response(data: dict, expected_count: int) -> list[int]:
    """Validate the Reviewer response and return the per-question scores, in order."""
    if "questions" not in data:
        raise ParseError("Reviewer response missing 'questions' field.")
    questions = data["questions"]
    if not isinstance(questions, list):
        raise ParseError("Reviewer 'questions' must be an array.")
    if len(questions) != expected_count:
        raise ParseError(
            f"Reviewer returned {len(questions)} questions for a batch of {expected_count}."
        )

    scores = []
    for i, question in enumerate(questions):
        if not isinstance(question, dict) or "score" not in question:
            raise ParseError(f"Reviewed question {i} missing 'score'.")
        score = question["score"]
        if isinstance(score, bool) or not isinstance(score, (int, float)) or score < 0:
            raise ParseError(f"Reviewed question {i} has invalid score {score!r}.")
        scores.append(round(score))

    distribution = data.get("scoreDistribution")
    if distribution is not None and not isinstance(distribution, dict):
        logger.warning("Ignoring non-object scoreDistribution from reviewer.")
        data["scoreDistribution"] = None

    return scores


def check_total(scores: list[int]) -> bool:
    """Log a warning when the scores do not add up to the configured total.

    Returns True if the total reconciles. Never raises: a human still reviews the batch.
    """
    config = get_config()
    expected = config.get("score_total", 100)
    tolerance = config.get("score_tolerance", 0)
    total = sum(scores)
    if abs(total - expected) > tolerance:
        logger.warning("Question scores total %d, expected %d (tolerance %d).", total, expected, tolerance)
        return False
    return True


def review_questions_node(state: PipelineState, ctx) -> dict:
    """Reviewer node. Copies each score onto the batch by position."""
    config = get_config()
    items = state.get("generated_items", [])
    params = resolve_node_params(state, "review_questions")
    system_content = params.get("system_prompt") or SYSTEM_PROMPT.format(total=config.get("score_total", 100))
    user_prompt = f"## Question Batch\n```json\n{json.dumps(items, ensure_ascii=False, indent=2)}\n```"

    try:
        reply = ctx.llm.invoke(system_content, user_prompt, params)
        data = decode_model_json(reply, expect=dict)
        scores = _validate_response(data, len(items))
    except (ExternalCapabilityError, ParseError) as exc:
        logger.error("Question review failed: %s", exc)
        return {"error_message": f"Question review failed: {exc}"}

    check_total(scores)
    scored = [{**item, "score": score} for item, score in zip(items, scores)]
    return {"generated_items": scored, "score_distribution": data.get("scoreDistribution")}
