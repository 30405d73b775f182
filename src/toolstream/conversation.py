"""Input guard for the user message and replayed history."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from loguru import logger

from .core.segments import MessageTurn

MAX_MESSAGE_LENGTH = 5000
MAX_HISTORY_MESSAGES = 20
ALLOWED_ROLES = frozenset({"user", "assistant"})

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ignore\s+(all\s+)?(previous|prior|above)\s+(instructions|prompts|rules)",
        r"disregard\s+(all\s+)?(previous|prior|your)\s+(instructions|rules)",
        r"you\s+are\s+now\s+(a|an|in)\b",
        r"(reveal|print|show)\s+(me\s+)?(your|the)\s+(system\s+)?prompt",
        r"</?\s*(system|assistant|instructions?)\s*>",
        r"\bjailbreak\b",
        r"pretend\s+(you\s+are|to\s+be)\s+",
    )
)


@dataclass(frozen=True)
class SanitizedMessage:
    content: str
    flagged: bool = False
    truncated: bool = False


def strip_control_characters(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def looks_like_injection(text: str) -> bool:
    return any(pattern.search(text) for pattern in _INJECTION_PATTERNS)


def sanitize_message(text: str, *, max_length: int = MAX_MESSAGE_LENGTH) -> SanitizedMessage:
    """Clean the user message. Suspicious phrasing is flagged, never blocked."""
    cleaned = strip_control_characters(text or "").strip()
    truncated = len(cleaned) > max_length
    if truncated:
        cleaned = cleaned[:max_length]
    flagged = looks_like_injection(cleaned)
    if flagged:
        logger.warning("input.injection_flagged length={}", len(cleaned))
    return SanitizedMessage(content=cleaned, flagged=flagged, truncated=truncated)


def sanitize_history(
    history: Iterable[MessageTurn | Mapping[str, Any]],
    *,
    limit: int = MAX_HISTORY_MESSAGES,
    max_length: int = MAX_MESSAGE_LENGTH,
) -> list[MessageTurn]:
    """Keep the last ``limit`` well-formed user/assistant messages."""
    turns: list[MessageTurn] = []
    for item in history:
        if isinstance(item, MessageTurn):
            role, content = item.role, item.content
        elif isinstance(item, Mapping):
            role, content = item.get("role"), item.get("content")
        else:
            continue
        if role not in ALLOWED_ROLES or not isinstance(content, str):
            continue
        cleaned = strip_control_characters(content).strip()[:max_length]
        if cleaned:
            turns.append(MessageTurn(role=role, content=cleaned))
    if limit <= 0:
        return []
    return turns[-limit:]
