"""Recover a JSON object from free-form model output."""

from __future__ import annotations

import json
from typing import Any

from loguru import logger


def balanced_object_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` spans of every top-level balanced ``{...}`` block.

    Braces inside JSON string literals are ignored. An unterminated block
    produces no span.
    """
    spans: list[tuple[int, int]] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            if depth > 0:
                in_string = True
            continue
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append((start, index + 1))
    return spans


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_document(text: str) -> dict[str, Any]:
    """Parse ``text`` as a JSON object.

    The whole string is tried first, then the largest balanced brace block.
    Anything else yields an empty object so every field falls back to its
    default.
    """
    stripped = (text or "").strip()
    if not stripped:
        return {}

    direct = _loads_object(stripped)
    if direct is not None:
        return direct

    spans = balanced_object_spans(stripped)
    if spans:
        start, end = max(spans, key=lambda span: span[1] - span[0])
        embedded = _loads_object(stripped[start:end])
        if embedded is not None:
            logger.debug("validator.parse.embedded offset={} length={}", start, end - start)
            return embedded

    logger.warning("validator.parse.failed length={}", len(stripped))
    return {}
