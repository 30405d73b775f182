"""Caller-facing orchestration events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SSE_DONE = "data: [DONE]\n\n"


class OrchestratorEvent(BaseModel):
    """Base class for every event delivered to an event sink."""

    model_config = ConfigDict(frozen=True)

    type: str

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json()}\n\n"


class ReasoningDelta(OrchestratorEvent):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    content: str


class ReasoningDone(OrchestratorEvent):
    type: Literal["reasoning-done"] = "reasoning-done"


class TextDelta(OrchestratorEvent):
    type: Literal["text-delta"] = "text-delta"
    content: str


class OperationRequested(OrchestratorEvent):
    type: Literal["operation-requested"] = "operation-requested"
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    round: int


class OperationResolved(OrchestratorEvent):
    type: Literal["operation-resolved"] = "operation-resolved"
    id: str
    name: str
    ok: bool
    error: dict[str, str] | None = None
    duration_ms: float = 0.0
    round: int


class EarlyExtraction(OrchestratorEvent):
    type: Literal["early-extraction"] = "early-extraction"
    key: str
    value: str


class RetryScheduled(OrchestratorEvent):
    type: Literal["retry"] = "retry"
    attempt: int
    delay_seconds: float
    reason: str


class RoundCapReached(OrchestratorEvent):
    type: Literal["round-cap-reached"] = "round-cap-reached"
    rounds: int
    unanswered: list[str] = Field(default_factory=list)


class FollowUp(OrchestratorEvent):
    type: Literal["follow-up"] = "follow-up"
    question: str
    options: list[dict[str, str]] = Field(default_factory=list)


class FinalResult(OrchestratorEvent):
    type: Literal["final-result"] = "final-result"
    data: dict[str, Any]


class FatalError(OrchestratorEvent):
    type: Literal["fatal-error"] = "fatal-error"
    message: str
    error_type: str


class Cancelled(OrchestratorEvent):
    type: Literal["cancelled"] = "cancelled"


EventSink = Callable[[OrchestratorEvent], None]


class QueueSink:
    """Event sink that feeds an asyncio queue.

    ``None`` is put on the queue by ``close`` to mark the end of a run.
    """

    def __init__(self, queue: asyncio.Queue[OrchestratorEvent | None] | None = None) -> None:
        self.queue: asyncio.Queue[OrchestratorEvent | None] = queue if queue is not None else asyncio.Queue()

    def __call__(self, event: OrchestratorEvent) -> None:
        self.queue.put_nowait(event)

    def close(self) -> None:
        self.queue.put_nowait(None)


class ListSink:
    """Event sink that records events in memory."""

    def __init__(self) -> None:
        self.events: list[OrchestratorEvent] = []

    def __call__(self, event: OrchestratorEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]
