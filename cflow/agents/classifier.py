"""Classifier Agent — labels a document as notes or questions and guesses its subject.

Only a bounded prefix of the text is sent; one reply carries both labels:

    type: note | question | mixed | unknown
    subject: math | physics | chemistry | biology | chinese | english | unknown
"""

import logging
import re

from cflow.config import get_config
from cflow.errors import ExternalCapabilityError
from cflow.llm import resolve_node_params
from cflow.state import PipelineState

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a document classifier for a quiz generator. Decide what kind of text you are given \
and which school subject it belongs to.

Step 1, content type:
- "note": mostly knowledge points, concepts, explanations or lecture notes
- "question": mostly exam questions (stems, options, answers)
- "mixed": substantial amounts of BOTH notes and questions

Step 2, subject (if it can be determined):
math, physics, chemistry, biology, chinese, english, or unknown (undeterminable or several subjects)

Reply with exactly these two lines and nothing else:
type: <note|question|mixed>
subject: <math|physics|chemistry|biology|chinese|english|unknown>
"""

_TYPE_RE = re.compile(r"type\s*[:：]\s*\**\s*(note|question|mixed|unknown)", re.IGNORECASE)
_SUBJECT_RE = re.compile(
    r"subject\s*[:：]\s*\**\s*(math|physics|chemistry|biology|chinese|english|unknown)",
    re.IGNORECASE,
)

MIXED_MESSAGE = "The document contains both notes and questions; upload them as separate files."
UNKNOWN_MESSAGE = "Could not tell whether the document contains notes or questions."


def parse_classification(reply: str) -> tuple[str, str]:
    """Extract (content type, subject) from a classifier reply.

    Fields that cannot be found default to 'unknown'.
    """
    type_match = _TYPE_RE.search(reply or "")
    subject_match = _SUBJECT_RE.search(reply or "")
    label = type_match.group(1).lower() if type_match else "unknown"
    subject = subject_match.group(1).lower() if subject_match else "unknown"
    return label, subject


def classify_node(state: PipelineState, ctx) -> dict:
    """Classifier node. Never raises for LLM failures; they become error_message."""
    config = get_config()
    sample = state["source_text"][: config.get("classifier_prefix_chars", 3000)]
    params = resolve_node_params(state, "classify")

    try:
        reply = ctx.llm.invoke(params.get("system_prompt") or SYSTEM_PROMPT, sample, params)
    except ExternalCapabilityError as exc:
        logger.error("Classifier call failed: %s", exc)
        return {
            "classification_label": "unknown",
            "subject_tag": "unknown",
            "error_message": f"Classification failed: {exc}",
        }

    label, subject = parse_classification(reply)
    logger.info("Classified %d chars as %s/%s", len(sample), label, subject)

    update = {"classification_label": label, "subject_tag": subject}
    if label == "mixed":
        update["error_message"] = MIXED_MESSAGE
    elif label == "unknown":
        update["error_message"] = UNKNOWN_MESSAGE
    return update
