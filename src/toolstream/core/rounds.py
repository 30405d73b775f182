"""Round controller: stream, dispatch, resume until the model is done."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field

from loguru import logger

from ..backend.base import BackendTransport
from ..errors import BackendConnectionError, BackendStreamError, BackendTimeoutError, CorrelationError
from ..tools.catalog import CapabilityCatalog
from .decoder import SegmentDecoder
from .dispatcher import SideEffectExecutor, ToolDispatcher
from .events import (
    EarlyExtraction,
    OperationRequested,
    OperationResolved,
    OrchestratorEvent,
    ReasoningDelta,
    ReasoningDone,
    RoundCapReached,
    TextDelta,
)
from .extractor import PartialOutputExtractor
from .segments import (
    ContentSegment,
    MessageTurn,
    ModelTurn,
    OperationRequest,
    OperationResult,
    OperationResultsTurn,
    ReasoningSegment,
    RoundOutcome,
    RoundResult,
    SegmentKind,
    StreamError,
    Turn,
)

DEFAULT_MAX_TOOL_ROUNDS = 3

Emit = Callable[[OrchestratorEvent], None]


@dataclass
class RoundState:
    """Turn history of one orchestration attempt."""

    turns: list[Turn] = field(default_factory=list)

    @classmethod
    def start(cls, history: Iterable[MessageTurn], message: str) -> RoundState:
        turns: list[Turn] = list(history)
        turns.append(MessageTurn(role="user", content=message))
        return cls(turns=turns)

    def outstanding_requests(self) -> tuple[OperationRequest, ...]:
        if not self.turns:
            return ()
        last = self.turns[-1]
        return last.requests if isinstance(last, ModelTurn) else ()

    def append_model_turn(self, segments: Sequence[ContentSegment]) -> ModelTurn:
        turn = ModelTurn(segments=tuple(segments))
        self.turns.append(turn)
        return turn

    def append_operation_results(self, results: Sequence[OperationResult]) -> OperationResultsTurn:
        expected = Counter(request.id for request in self.outstanding_requests())
        received = Counter(result.id for result in results)
        if not expected or expected != received:
            raise CorrelationError(
                f"operation results {sorted(received)} do not match outstanding requests {sorted(expected)}"
            )
        turn = OperationResultsTurn(results=tuple(results))
        self.turns.append(turn)
        return turn


@dataclass(frozen=True)
class RoundReport:
    """What the controller hands to validation once the model is done."""

    final_text: str
    rounds: int
    operations: int
    round_cap_reached: bool = False


class RoundController:
    """Drive streaming, dispatching and resuming for one attempt."""

    def __init__(
        self,
        *,
        transport: BackendTransport,
        catalog: CapabilityCatalog,
        executor: SideEffectExecutor,
        emit: Emit,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        extraction_keys: Sequence[str] = ("go_to",),
        stream_timeout_seconds: float | None = None,
        operation_timeout_seconds: float | None = None,
    ) -> None:
        self._transport = transport
        self._catalog = catalog
        self._executor = executor
        self._emit = emit
        self._max_tool_rounds = max_tool_rounds
        self._extraction_keys = tuple(extraction_keys)
        self._stream_timeout_seconds = stream_timeout_seconds
        self._operation_timeout_seconds = operation_timeout_seconds

    async def run(self, state: RoundState) -> RoundReport:
        dispatches = 0
        operations = 0
        last_text = ""
        round_number = 0
        while True:
            round_number += 1
            result = await self._stream_round(state, round_number)
            state.append_model_turn(result.segments)
            if result.text.strip():
                last_text = result.text

            if result.outcome is RoundOutcome.COMPLETE:
                logger.info("round.done rounds={} operations={}", round_number, operations)
                return RoundReport(final_text=result.text, rounds=round_number, operations=operations)

            requests = result.requests
            if dispatches >= self._max_tool_rounds:
                names = [request.name for request in requests]
                logger.warning(
                    "round.cap_reached rounds={} max_tool_rounds={} unanswered={}",
                    round_number,
                    self._max_tool_rounds,
                    names,
                )
                self._emit(RoundCapReached(rounds=round_number, unanswered=names))
                return RoundReport(
                    final_text=last_text,
                    rounds=round_number,
                    operations=operations,
                    round_cap_reached=True,
                )

            results = await self._dispatcher(round_number).dispatch(requests)
            state.append_operation_results(results)
            dispatches += 1
            operations += len(results)

    async def _stream_round(self, state: RoundState, round_number: int) -> RoundResult:
        extractor = PartialOutputExtractor(
            self._extraction_keys,
            lambda key, value: self._emit(EarlyExtraction(key=key, value=value)),
        )

        def on_delta(kind: SegmentKind, fragment: str, accumulated: str) -> None:
            if kind == SegmentKind.REASONING:
                self._emit(ReasoningDelta(content=fragment))
            elif kind == SegmentKind.TEXT:
                self._emit(TextDelta(content=fragment))
                extractor.observe(accumulated)

        def on_close(segment: ContentSegment) -> None:
            if isinstance(segment, ReasoningSegment):
                self._emit(ReasoningDone())

        decoder = SegmentDecoder(on_delta=on_delta, on_close=on_close)
        logger.info("round.stream.start round={} turns={}", round_number, len(state.turns))
        try:
            async with asyncio.timeout(self._stream_timeout_seconds):
                async with aclosing(self._transport.open_round_stream(tuple(state.turns), self._catalog)) as signals:
                    async for signal in signals:
                        if isinstance(signal, StreamError):
                            raise BackendStreamError(signal.error_type, signal.message)
                        result = decoder.feed(signal)
                        if result is not None:
                            logger.info(
                                "round.stream.end round={} outcome={} reason={} segments={}",
                                round_number,
                                result.outcome,
                                result.reason,
                                len(result.segments),
                            )
                            return result
        except TimeoutError as exc:
            raise BackendTimeoutError(f"stream exceeded {self._stream_timeout_seconds}s") from exc
        raise BackendConnectionError("stream ended before the round finished")

    def _dispatcher(self, round_number: int) -> ToolDispatcher:
        def on_request(request: OperationRequest) -> None:
            self._emit(OperationRequested(id=request.id, name=request.name, args=request.args, round=round_number))

        def on_result(result: OperationResult, duration_ms: float) -> None:
            self._emit(
                OperationResolved(
                    id=result.id,
                    name=result.name,
                    ok=result.ok,
                    error=result.error,
                    duration_ms=round(duration_ms, 3),
                    round=round_number,
                )
            )

        return ToolDispatcher(
            self._executor,
            timeout_seconds=self._operation_timeout_seconds,
            on_request=on_request,
            on_result=on_result,
        )
