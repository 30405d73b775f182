"""Immutable capability catalog sent to the backend with every stream."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass(frozen=True)
class Capability:
    """One operation as the backend sees it."""

    name: str
    description: str
    input_schema: MappingProxyType[str, Any] = field(default_factory=lambda: MappingProxyType(dict(EMPTY_INPUT_SCHEMA)))

    def to_wire(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": _thaw(self.input_schema)}


@dataclass(frozen=True)
class CapabilityCatalog:
    """Process-wide, read-only list of capabilities."""

    entries: tuple[Capability, ...] = ()

    @classmethod
    def build(cls, capabilities: Iterable[Capability]) -> CapabilityCatalog:
        entries = tuple(sorted(capabilities, key=lambda item: item.name))
        names = [entry.name for entry in entries]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate capability names: {', '.join(duplicates)}")
        return cls(entries=entries)

    def __iter__(self) -> Iterator[Capability]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return any(entry.name == name for entry in self.entries)

    def names(self) -> list[str]:
        return [entry.name for entry in self.entries]

    def to_wire(self) -> list[dict[str, Any]]:
        return [entry.to_wire() for entry in self.entries]


def freeze_schema(schema: dict[str, Any] | None) -> MappingProxyType[str, Any]:
    return MappingProxyType(_freeze(schema or EMPTY_INPUT_SCHEMA))


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, MappingProxyType | dict):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple | list):
        return [_thaw(item) for item in value]
    return value
