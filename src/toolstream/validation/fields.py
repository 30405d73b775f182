"""Per-field coercion helpers.

Each helper inspects one raw value and returns either a well-typed value or
the supplied fallback. None of them raise.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Mapping
from typing import Any


def as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes"}:
            return True
        if lowered in {"false", "no"}:
            return False
    return default


def as_choice(value: Any, allowed: Collection[str], default: str) -> str:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in allowed:
            return normalized
    return default


def as_unit_interval(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    number = float(value)
    if not math.isfinite(number) or number < 0.0 or number > 1.0:
        return default
    return number


def as_text(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def as_optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def as_text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}
