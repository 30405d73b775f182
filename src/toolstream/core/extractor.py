"""Early extraction of anchor values from a partially streamed JSON document."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable

from loguru import logger

from ..validation.cleanup import clean_speakable_text

ExtractCallback = Callable[[str, str], None]


def _anchor_pattern(key: str) -> re.Pattern[str]:
    return re.compile(r'"' + re.escape(key) + r'"\s*:\s*"((?:[^"\\]|\\.)*)"')


def extract_closed_string(text: str, pattern: re.Pattern[str]) -> str | None:
    """Return the decoded value once its string literal is closed, else ``None``."""
    match = pattern.search(text)
    if match is None:
        return None
    try:
        value = json.loads(f'"{match.group(1)}"')
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, str) else None


class PartialOutputExtractor:
    """Emit each configured anchor value at most once per round."""

    def __init__(
        self,
        keys: Iterable[str],
        on_extract: ExtractCallback,
        *,
        clean: Callable[[str], str] = clean_speakable_text,
    ) -> None:
        self._patterns = {key: _anchor_pattern(key) for key in keys}
        self._on_extract = on_extract
        self._clean = clean
        self._latched: dict[str, str] = {}

    @property
    def emitted(self) -> dict[str, str]:
        return dict(self._latched)

    def observe(self, accumulated: str) -> None:
        for key, pattern in self._patterns.items():
            if key in self._latched:
                continue
            value = extract_closed_string(accumulated, pattern)
            if value is None:
                continue
            cleaned = self._clean(value)
            self._latched[key] = cleaned
            logger.info("extractor.anchor key={} length={}", key, len(cleaned))
            try:
                self._on_extract(key, cleaned)
            except Exception:
                logger.exception("extractor.emit.error key={}", key)
