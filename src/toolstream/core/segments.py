"""Stream signals, content segments and conversation turns."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal


class SegmentKind(StrEnum):
    REASONING = "reasoning"
    TEXT = "text"
    TOOL_INVOCATION = "tool_invocation"


class RoundOutcome(StrEnum):
    TOOL_REQUESTED = "tool_requested"
    COMPLETE = "complete"


# Signals produced by a backend transport.


@dataclass(frozen=True, slots=True)
class SegmentStart:
    kind: SegmentKind
    tool_id: str | None = None
    tool_name: str | None = None


@dataclass(frozen=True, slots=True)
class SegmentDelta:
    kind: SegmentKind
    fragment: str


@dataclass(frozen=True, slots=True)
class SegmentEnd:
    kind: SegmentKind
    signature: str | None = None


@dataclass(frozen=True, slots=True)
class RoundEnd:
    reason: str = "end_turn"


@dataclass(frozen=True, slots=True)
class StreamError:
    error_type: str
    message: str = ""


StreamSignal = SegmentStart | SegmentDelta | SegmentEnd | RoundEnd | StreamError


# Closed content segments.


@dataclass(frozen=True)
class ReasoningSegment:
    text: str
    signature: str | None = None
    kind: Literal[SegmentKind.REASONING] = SegmentKind.REASONING


@dataclass(frozen=True)
class TextSegment:
    text: str
    kind: Literal[SegmentKind.TEXT] = SegmentKind.TEXT


@dataclass(frozen=True)
class ToolInvocationSegment:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    kind: Literal[SegmentKind.TOOL_INVOCATION] = SegmentKind.TOOL_INVOCATION

    def to_request(self) -> OperationRequest:
        return OperationRequest(id=self.id, name=self.name, args=dict(self.args))


ContentSegment = ReasoningSegment | TextSegment | ToolInvocationSegment


@dataclass(frozen=True)
class OperationRequest:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OperationResult:
    id: str
    name: str
    payload: Any = None
    error: dict[str, str] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RoundResult:
    """Closed segments of one backend stream and its classified outcome."""

    segments: tuple[ContentSegment, ...]
    outcome: RoundOutcome
    reason: str = ""

    @property
    def text(self) -> str:
        return "".join(segment.text for segment in self.segments if isinstance(segment, TextSegment))

    @property
    def requests(self) -> tuple[OperationRequest, ...]:
        return tuple(
            segment.to_request() for segment in self.segments if isinstance(segment, ToolInvocationSegment)
        )


# Conversation turns sent back to the backend.


@dataclass(frozen=True)
class MessageTurn:
    role: Literal["user", "assistant"]
    content: str


@dataclass(frozen=True)
class ModelTurn:
    segments: tuple[ContentSegment, ...]

    @property
    def requests(self) -> tuple[OperationRequest, ...]:
        return tuple(
            segment.to_request() for segment in self.segments if isinstance(segment, ToolInvocationSegment)
        )


@dataclass(frozen=True)
class OperationResultsTurn:
    results: tuple[OperationResult, ...]


Turn = MessageTurn | ModelTurn | OperationResultsTurn
