"""Segment decoder: turns stream signals into ordered content segments."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .segments import (
    ContentSegment,
    ReasoningSegment,
    RoundEnd,
    RoundOutcome,
    RoundResult,
    SegmentDelta,
    SegmentEnd,
    SegmentKind,
    SegmentStart,
    StreamSignal,
    TextSegment,
    ToolInvocationSegment,
)

DeltaCallback = Callable[[SegmentKind, str, str], None]
CloseCallback = Callable[[ContentSegment], None]


@dataclass
class _OpenSegment:
    kind: SegmentKind
    tool_id: str | None = None
    tool_name: str | None = None
    fragments: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.fragments)


def parse_tool_arguments(raw: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("decoder.tool_args.invalid raw={!r}", raw[:200])
        return {}
    if not isinstance(parsed, dict):
        logger.warning("decoder.tool_args.not_object type={}", type(parsed).__name__)
        return {}
    return parsed


class SegmentDecoder:
    """Decode one round of stream signals.

    At most one segment is open at a time. Deltas are forwarded live through
    ``on_delta(kind, fragment, accumulated)`` and closed segments through
    ``on_close``. Protocol violations are logged and dropped.
    """

    def __init__(
        self,
        *,
        on_delta: DeltaCallback | None = None,
        on_close: CloseCallback | None = None,
    ) -> None:
        self._on_delta = on_delta
        self._on_close = on_close
        self._open: _OpenSegment | None = None
        self._segments: list[ContentSegment] = []
        self._finished = False

    @property
    def open_kind(self) -> SegmentKind | None:
        return self._open.kind if self._open is not None else None

    @property
    def segments(self) -> tuple[ContentSegment, ...]:
        return tuple(self._segments)

    def feed(self, signal: StreamSignal) -> RoundResult | None:
        """Apply one signal; returns the round result on round end."""
        if self._finished:
            logger.warning("decoder.signal.after_round_end signal={}", type(signal).__name__)
            return None
        match signal:
            case SegmentStart():
                self._start(signal)
            case SegmentDelta():
                self._delta(signal)
            case SegmentEnd():
                self._end(signal)
            case RoundEnd():
                return self._finish(signal)
            case _:
                logger.warning("decoder.signal.unexpected signal={!r}", signal)
        return None

    def _start(self, signal: SegmentStart) -> None:
        if self._open is not None:
            logger.warning(
                "decoder.segment.start_while_open open={} new={}",
                self._open.kind,
                signal.kind,
            )
            self._close()
        if signal.kind == SegmentKind.TOOL_INVOCATION and not (signal.tool_id and signal.tool_name):
            logger.warning("decoder.segment.tool_without_identity id={} name={}", signal.tool_id, signal.tool_name)
        self._open = _OpenSegment(kind=SegmentKind(signal.kind), tool_id=signal.tool_id, tool_name=signal.tool_name)

    def _delta(self, signal: SegmentDelta) -> None:
        if self._open is None:
            logger.warning("decoder.delta.no_open_segment kind={}", signal.kind)
            return
        if signal.kind != self._open.kind:
            logger.warning("decoder.delta.kind_mismatch open={} delta={}", self._open.kind, signal.kind)
            return
        if not signal.fragment:
            return
        self._open.fragments.append(signal.fragment)
        if self._on_delta is not None:
            self._on_delta(self._open.kind, signal.fragment, self._open.text)

    def _end(self, signal: SegmentEnd) -> None:
        if self._open is None or signal.kind != self._open.kind:
            logger.warning("decoder.end.unmatched kind={} open={}", signal.kind, self.open_kind)
            return
        self._close(signature=signal.signature)

    def _finish(self, signal: RoundEnd) -> RoundResult:
        if self._open is not None:
            logger.warning("decoder.round_end.segment_open kind={}", self._open.kind)
            self._close()
        self._finished = True
        requested = any(isinstance(segment, ToolInvocationSegment) for segment in self._segments)
        outcome = RoundOutcome.TOOL_REQUESTED if requested else RoundOutcome.COMPLETE
        logger.debug("decoder.round_end reason={} outcome={} segments={}", signal.reason, outcome, len(self._segments))
        return RoundResult(segments=tuple(self._segments), outcome=outcome, reason=signal.reason)

    def _close(self, *, signature: str | None = None) -> None:
        current = self._open
        if current is None:
            return
        self._open = None
        segment: ContentSegment
        if current.kind == SegmentKind.REASONING:
            segment = ReasoningSegment(text=current.text, signature=signature)
        elif current.kind == SegmentKind.TEXT:
            segment = TextSegment(text=current.text)
        else:
            segment = ToolInvocationSegment(
                id=current.tool_id or "",
                name=current.tool_name or "",
                args=parse_tool_arguments(current.text),
            )
        self._segments.append(segment)
        if self._on_close is not None:
            self._on_close(segment)
