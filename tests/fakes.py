"""Fakes shared by the test suite."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass, field
from typing import Any

from toolstream.core.dispatcher import UnknownOperationError
from toolstream.core.segments import (
    RoundEnd,
    SegmentDelta,
    SegmentEnd,
    SegmentKind,
    SegmentStart,
    StreamSignal,
    Turn,
)
from toolstream.tools.catalog import CapabilityCatalog

Script = list[StreamSignal] | BaseException


def text_round(*chunks: str, reasoning: str | None = None) -> list[StreamSignal]:
    signals: list[StreamSignal] = []
    if reasoning is not None:
        signals += [
            SegmentStart(SegmentKind.REASONING),
            SegmentDelta(SegmentKind.REASONING, reasoning),
            SegmentEnd(SegmentKind.REASONING, signature="sig"),
        ]
    signals.append(SegmentStart(SegmentKind.TEXT))
    signals += [SegmentDelta(SegmentKind.TEXT, chunk) for chunk in chunks]
    signals += [SegmentEnd(SegmentKind.TEXT), RoundEnd("end_turn")]
    return signals


def tool_round(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> list[StreamSignal]:
    signals: list[StreamSignal] = []
    if text:
        signals += [SegmentStart(SegmentKind.TEXT), SegmentDelta(SegmentKind.TEXT, text), SegmentEnd(SegmentKind.TEXT)]
    for call_id, name, args in calls:
        raw = json.dumps(args)
        middle = len(raw) // 2
        signals += [
            SegmentStart(SegmentKind.TOOL_INVOCATION, tool_id=call_id, tool_name=name),
            SegmentDelta(SegmentKind.TOOL_INVOCATION, raw[:middle]),
            SegmentDelta(SegmentKind.TOOL_INVOCATION, raw[middle:]),
            SegmentEnd(SegmentKind.TOOL_INVOCATION),
        ]
    signals.append(RoundEnd("tool_use"))
    return signals


@dataclass
class ScriptedTransport:
    """Replays one scripted round per opened stream; exceptions are raised instead."""

    scripts: list[Script]
    repeat_last: bool = False
    histories: list[tuple[Turn, ...]] = field(default_factory=list)

    @property
    def opened(self) -> int:
        return len(self.histories)

    async def open_round_stream(
        self,
        history: Sequence[Turn],
        catalog: CapabilityCatalog,
    ) -> AsyncGenerator[StreamSignal, None]:
        self.histories.append(tuple(history))
        index = len(self.histories) - 1
        if index >= len(self.scripts):
            if not self.repeat_last:
                raise AssertionError("transport opened more streams than scripted")
            index = len(self.scripts) - 1
        script = self.scripts[index]
        if isinstance(script, BaseException):
            raise script
        for signal in script:
            yield signal


@dataclass
class FakeExecutor:
    handlers: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    async def execute(self, name: str, args: dict[str, Any]) -> Any:
        self.calls.append((name, args))
        handler = self.handlers.get(name)
        if handler is None:
            raise UnknownOperationError(name)
        result = handler(**args)
        if hasattr(result, "__await__"):
            result = await result
        return result


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


