"""Repair near-JSON model output into a JSON object."""

import json
import re
from typing import Any

from .exceptions import OracleParseError

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_LINE_COMMENT = re.compile(r"^\s*//.*$|(?<=[,{\[\]}\"\deul])[ \t]*//.*$", re.MULTILINE)
_OUTER_OBJECT = re.compile(r"\{[\s\S]*\}")


def _clean(text: str) -> str:
    text = _LINE_COMMENT.sub("", text)
    return _TRAILING_COMMA.sub(r"\1", text)


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse model output that is supposed to be a JSON object.

    Tolerates a surrounding markdown code fence, trailing commas, ``//``
    comments on their own line or trailing a value, and prose
    around the outermost ``{...}``.
    """
    text = (raw or "").strip()
    fenced = _CODE_FENCE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    candidates = [_clean(text)]
    outer = _OUTER_OBJECT.search(text)
    if outer:
        candidates.append(_clean(outer.group(0)))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
        raise OracleParseError(
            f"Expected a JSON object, got {type(parsed).__name__}", raw_text=raw
        )

    raise OracleParseError(
        f"Could not parse oracle output as JSON: {text[:300]}", raw_text=raw
    )
