"""Distilled item-writing guidance for injection into quiz prompts.

One short rule set applies to every subject; a subject tag recognised by the
classifier adds its own rules on top.
"""

# Imperative rules for LLM consumption. Keep each rule to one line of intent.
_GENERAL_RULES = """\
- Test one idea per question; avoid "all of the above" and "none of the above".
- Distractors must be plausible and drawn from common misconceptions in the source.
- Keep options parallel in length and grammar so the answer is not given away by form.
- Every explanation must justify the correct answer using the source material.\
"""

_SUBJECT_RULES = {
    "math": "- Use exact values; show the key step of the computation in the explanation.",
    "physics": "- State units in every numeric option and keep significant figures consistent.",
    "chemistry": "- Write formulas and equations in standard notation; balance every equation.",
    "biology": "- Prefer mechanism and process questions over isolated terminology recall.",
    "chinese": "- Quote the source passage exactly when a question refers to it.",
    "english": "- Test usage in context rather than isolated definitions.",
}


def load_guidance(subject: str | None = None) -> str:
    """Return the distilled item-writing rules for a subject.

    Returns an empty string if guidance is disabled in config
    (set guidance_enabled to false or remove it).
    """
    from cflow.config import get_config

    config = get_config()
    if not config.get("guidance_enabled", False):
        return ""

    extra = _SUBJECT_RULES.get(subject or "")
    return f"{_GENERAL_RULES}\n{extra}" if extra else _GENERAL_RULES
