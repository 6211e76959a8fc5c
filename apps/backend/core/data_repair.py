"""
Tolerant JSON recovery.

Script bodies, hydration payloads and language-model replies routinely contain
JSON that is surrounded by other text, cut off mid-stream or wrapped in
markdown fences. This module finds, repairs and parses such JSON instead of
requiring a strict parse of the whole input:

1. Strip markdown code fences
2. Locate the first balanced ``{...}`` or ``[...]`` span (string/escape aware)
3. Close truncated structures (drop a dangling string or key, balance brackets)
4. Reject input with no recoverable structure
"""

import re
import json
import logging
from typing import Any, List, Optional, Tuple

from core.errors import ParseError

logger = logging.getLogger(__name__)

FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*|\s*```\s*$")
CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json fence and a trailing ``` fence."""
    if not text:
        return ""
    return FENCE_RE.sub("", text.strip()).strip()


def find_balanced_json(text: str, start: int = 0) -> Optional[Tuple[int, int]]:
    """
    Locate the first balanced JSON object or array at or after ``start``.

    Brackets inside string literals are ignored and backslash escapes are
    honoured.

    Returns:
        (begin, end) slice bounds of the span, or None if no opening bracket
        is found or the structure never closes.
    """
    begin = -1
    for i in range(start, len(text)):
        if text[i] in CLOSERS:
            begin = i
            break
    if begin < 0:
        return None

    stack: List[str] = []
    in_string = False
    escaped = False
    for i in range(begin, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in CLOSERS:
            stack.append(CLOSERS[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                return begin, i + 1
    return None


def extract_json(text: str, start: int = 0) -> Optional[Any]:
    """
    Parse the first balanced JSON value found at or after ``start``.

    Spans that balance but still fail to parse (JS object literals with
    unquoted keys, for instance) are skipped and scanning continues.
    """
    pos = start
    while pos < len(text):
        span = find_balanced_json(text, pos)
        if span is None:
            return None
        begin, end = span
        try:
            return json.loads(text[begin:end])
        except ValueError:
            pos = begin + 1
    return None


def _drop_dangling_tail(fragment: str) -> str:
    """Trim a trailing comma, or a key left without its value, before closing."""
    fragment = fragment.rstrip()
    while True:
        if fragment.endswith(","):
            fragment = fragment[:-1].rstrip()
            continue
        if fragment.endswith(":"):
            # Remove the orphaned "key":
            key_match = re.search(r',?\s*"(?:[^"\\]|\\.)*"\s*:$', fragment)
            if not key_match:
                return fragment[:-1]
            fragment = fragment[:key_match.start()].rstrip()
            continue
        return fragment


def repair_json(text: str) -> Optional[Any]:
    """
    Repair truncated JSON by closing open strings, objects and arrays.

    A string cut off mid-value is dropped together with its key; any
    remaining open brackets are closed in order. Returns the parsed value,
    or None if there is no recoverable structure (no opening bracket, or the
    repaired value is empty).
    """
    text = strip_code_fences(text)
    begin = -1
    for i, ch in enumerate(text):
        if ch in CLOSERS:
            begin = i
            break
    if begin < 0:
        return None

    stack: List[str] = []
    in_string = False
    escaped = False
    string_start = -1
    end = len(text)
    # Trailing commas before a closer are a common model mistake
    trailing_commas: List[int] = []
    pending_comma = -1
    for i in range(begin, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            string_start = i
            pending_comma = -1
        elif ch in CLOSERS:
            stack.append(CLOSERS[ch])
            pending_comma = -1
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return None
            if pending_comma >= 0:
                trailing_commas.append(pending_comma)
                pending_comma = -1
            stack.pop()
            if not stack:
                end = i + 1
                break
        elif ch == ",":
            pending_comma = i
        elif not ch.isspace():
            pending_comma = -1

    # Quote truncation: cut the unterminated string off entirely
    cut = string_start if in_string else end
    pieces = []
    prev = begin
    for pos in trailing_commas:
        pieces.append(text[prev:pos])
        prev = pos + 1
    pieces.append(text[prev:cut])
    fragment = "".join(pieces)
    if stack or in_string:
        fragment = _drop_dangling_tail(fragment)
        fragment += "".join(reversed(stack))

    try:
        value = json.loads(fragment)
    except ValueError as e:
        logger.debug(f"[json] Repair failed: {e}")
        return None

    if isinstance(value, (dict, list)) and not value:
        return None
    return value


def parse_json_lenient(text: str) -> Any:
    """
    Parse JSON from noisy text, repairing it if needed.

    Raises:
        ParseError: if no strict parse, balanced span or repair succeeds
    """
    if not text or not text.strip():
        raise ParseError("Empty JSON input")

    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except ValueError:
        pass

    value = extract_json(cleaned)
    if value is not None:
        return value

    value = repair_json(cleaned)
    if value is not None:
        logger.info("[json] Recovered truncated JSON by bracket balancing")
        return value

    raise ParseError(f"Unrecoverable JSON ({len(text)} chars)")
