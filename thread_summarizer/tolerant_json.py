from __future__ import annotations

import json
import re
from typing import Any

from .errors import DecodeError

MAX_POSITIONAL_REPAIRS = 20

_LEADING_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\s*```\s*$")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_ADJACENT_STRINGS_RE = re.compile(r'"(\s*\n\s*)"')
_ADJACENT_OBJECTS_RE = re.compile(r"}(\s*\n\s*){")
_STRING_THEN_KEY_RE = re.compile(r'"(\s*\n\s*)"(\w+)"\s*:')
_BRACKET_THEN_KEY_RE = re.compile(r'([}\]])(\s*\n\s*)"(\w+)"\s*:')

_MISSING_SEPARATOR_MESSAGES = ("Expecting ',' delimiter",)


def extract_json_span(text: str) -> str:
    """
    Return the substring from the first '{' to the last '}'.

    Only a fence wrapping the whole reply is stripped; backticks inside the
    object are string content and stay as they are.
    """
    cleaned = _TRAILING_FENCE_RE.sub("", _LEADING_FENCE_RE.sub("", text or "")).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise DecodeError("No JSON object found in AI response")
    return cleaned[start : end + 1]


def sanitize_string_literals(text: str) -> str:
    """Replace raw newlines, carriage returns and tabs inside string literals with spaces."""
    out: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if escaped:
            out.append(ch)
            escaped = False
            continue
        if ch == "\\" and in_string:
            out.append(ch)
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            out.append(ch)
            continue
        if in_string and ch in "\n\r\t":
            out.append(" ")
            continue
        out.append(ch)

    return "".join(out)


def repair_json(text: str) -> str:
    """Apply the regex repairs for the usual near-JSON defects, in a fixed order."""
    s = sanitize_string_literals(text)
    s = _TRAILING_COMMA_RE.sub(r"\1", s)
    s = _ADJACENT_STRINGS_RE.sub('",\n"', s)
    s = _ADJACENT_OBJECTS_RE.sub("},\n{", s)
    s = _STRING_THEN_KEY_RE.sub(r'",\n"\2":', s)
    s = _BRACKET_THEN_KEY_RE.sub(r'\1,\n"\3":', s)
    return s


def repair_json_iterative(text: str, *, max_attempts: int = MAX_POSITIONAL_REPAIRS) -> Any:
    """
    Parse, inserting a comma wherever the parser reports a missing separator.

    Only missing-separator errors are patched; anything else is re-raised at once.
    The inserted comma is trusted as soon as the parser moves past it, so a
    pathological input can come out structurally valid but semantically off.
    """
    current = text
    for _ in range(max_attempts):
        try:
            return json.loads(current)
        except json.JSONDecodeError as e:
            if e.msg not in _MISSING_SEPARATOR_MESSAGES:
                raise
            if not (0 < e.pos < len(current)):
                raise
            current = current[: e.pos] + "," + current[e.pos :]

    return json.loads(current)


def parse_ai_json_response(raw: str) -> Any:
    """
    Decode model output that is supposed to be a JSON object.

    Escalates through a direct parse, regex repair and positional repair. Raises
    DecodeError when no object span exists or every tier fails.
    """
    span = extract_json_span(raw)

    try:
        return json.loads(span)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(span)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        pass

    try:
        return repair_json_iterative(repaired)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Could not repair AI JSON: {e.msg} at position {e.pos}") from e
