from __future__ import annotations

import json
import re
from typing import Any

_FENCED_BLOCK = re.compile(r"```[ \t]*([A-Za-z0-9_-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)


def _try_loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (TypeError, ValueError):
        return False, None


def _outermost_span(text: str, open_char: str, close_char: str) -> str | None:
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_json_from_markdown(text: str | None) -> tuple[bool, Any]:
    """
    Extract JSON from an LLM response.

    Tries, in order: the whole text, each fenced code block (```json or bare
    ```), then the outermost {...} or [...] span. Returns (success, data).
    """
    if not text or not text.strip():
        return False, None

    ok, data = _try_loads(text.strip())
    if ok:
        return True, data

    for match in _FENCED_BLOCK.finditer(text):
        language = match.group(1).lower()
        if language not in ("", "json"):
            continue
        ok, data = _try_loads(match.group(2).strip())
        if ok:
            return True, data

    for open_char, close_char in (("{", "}"), ("[", "]")):
        span = _outermost_span(text, open_char, close_char)
        if span is None:
            continue
        ok, data = _try_loads(span)
        if ok:
            return True, data

    return False, None
