"""Shared parsing utilities for model responses."""

import json
import re

from cflow.errors import ParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def strip_fences(text: str) -> str:
    """Strip markdown code fences from LLM output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def decode_model_json(raw: str, expect: type | tuple[type, ...] | None = None):
    """Decode a model reply as JSON after stripping an optional code fence.

    Raises ParseError if the text is not valid JSON or, when ``expect`` is
    given, if the decoded top-level value is not of that type.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ParseError("Model returned an empty response.")
    content = strip_fences(raw)
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Model response is not valid JSON: {exc.msg} (line {exc.lineno})") from exc
    if expect is not None and not isinstance(data, expect):
        raise ParseError(
            f"Model response has top-level type '{type(data).__name__}', "
            f"expected {_type_names(expect)}."
        )
    return data


def _type_names(expect) -> str:
    if isinstance(expect, tuple):
        return " or ".join(t.__name__ for t in expect)
    return expect.__name__
