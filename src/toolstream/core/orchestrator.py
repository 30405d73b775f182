"""Top-level orchestration: input guard, retries, rounds, validation, events."""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from collections.abc import AsyncIterator, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel

from ..backend.base import BackendTransport
from ..config import Settings
from ..conversation import sanitize_history, sanitize_message
from ..logging_utils import bind_run
from ..telemetry import RunRecord, TelemetryAggregator
from ..tools.catalog import CapabilityCatalog
from ..validation.triage import TriageResult, validate_triage_result
from .dispatcher import SideEffectExecutor
from .events import (
    Cancelled,
    EventSink,
    FatalError,
    FinalResult,
    FollowUp,
    OrchestratorEvent,
    QueueSink,
    RetryScheduled,
)
from .retry import RetryPolicy, RetryShell, Sleep
from .rounds import DEFAULT_MAX_TOOL_ROUNDS, RoundController, RoundReport, RoundState
from .segments import MessageTurn

Validator = Callable[[str], BaseModel]


class OutcomeStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class OrchestrationOutcome:
    status: OutcomeStatus
    result: BaseModel | None = None
    error: BaseException | None = None
    attempts: int = 0
    rounds: int = 0
    operations: int = 0
    round_cap_reached: bool = False
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED


class Orchestrator:
    """Run one user message through the backend until a validated result exists."""

    def __init__(
        self,
        *,
        transport: BackendTransport,
        executor: SideEffectExecutor,
        catalog: CapabilityCatalog,
        validator: Validator = validate_triage_result,
        retry_policy: RetryPolicy | None = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        extraction_keys: Sequence[str] = ("go_to",),
        stream_timeout_seconds: float | None = None,
        operation_timeout_seconds: float | None = None,
        history_limit: int = 20,
        telemetry: TelemetryAggregator | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._executor = executor
        self._catalog = catalog
        self._validator = validator
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_tool_rounds = max_tool_rounds
        self._extraction_keys = tuple(extraction_keys)
        self._stream_timeout_seconds = stream_timeout_seconds
        self._operation_timeout_seconds = operation_timeout_seconds
        self._history_limit = history_limit
        self._telemetry = telemetry
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: BackendTransport,
        executor: SideEffectExecutor,
        catalog: CapabilityCatalog,
        telemetry: TelemetryAggregator | None = None,
    ) -> Orchestrator:
        return cls(
            transport=transport,
            executor=executor,
            catalog=catalog,
            retry_policy=RetryPolicy.from_values(settings.max_attempts, settings.retry_delays),
            max_tool_rounds=settings.max_tool_rounds,
            extraction_keys=settings.early_extraction_keys,
            stream_timeout_seconds=settings.stream_timeout_seconds,
            operation_timeout_seconds=settings.operation_timeout_seconds,
            history_limit=settings.history_limit,
            telemetry=telemetry,
        )

    @property
    def catalog(self) -> CapabilityCatalog:
        return self._catalog

    async def run(
        self,
        message: str,
        history: Iterable[MessageTurn | Mapping[str, Any]] = (),
        *,
        sink: EventSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> OrchestrationOutcome:
        sanitized = sanitize_message(message)
        if not sanitized.content:
            raise ValueError("message is required")
        turns = sanitize_history(history, limit=self._history_limit)
        run_id = uuid.uuid4().hex[:12]

        with bind_run(run_id):
            logger.info(
                "orchestrator.start history={} length={} flagged={}",
                len(turns),
                len(sanitized.content),
                sanitized.flagged,
            )
            started = time.monotonic()
            outcome = await self._run(sanitized.content, turns, _SafeSink(sink), cancel)
            outcome = replace(outcome, message=sanitized.content)
            latency_ms = (time.monotonic() - started) * 1000
            logger.info(
                "orchestrator.end status={} attempts={} rounds={} operations={} latency={:.1f}ms",
                outcome.status,
                outcome.attempts,
                outcome.rounds,
                outcome.operations,
                latency_ms,
            )
            self._record(outcome, latency_ms)
        return outcome

    async def stream(
        self,
        message: str,
        history: Iterable[MessageTurn | Mapping[str, Any]] = (),
        *,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[OrchestratorEvent]:
        """Yield events as they happen; the terminal event closes the stream."""
        sink = QueueSink()
        task = asyncio.create_task(self.run(message, history, sink=sink, cancel=cancel))
        task.add_done_callback(lambda _: sink.close())
        try:
            while True:
                event = await sink.queue.get()
                if event is None:
                    break
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _run(
        self,
        message: str,
        history: list[MessageTurn],
        emit: _SafeSink,
        cancel: asyncio.Event | None,
    ) -> OrchestrationOutcome:
        def on_retry(attempt: int, delay: float, exc: BaseException) -> None:
            emit(RetryScheduled(attempt=attempt, delay_seconds=delay, reason=f"{type(exc).__name__}: {exc}"))

        shell = RetryShell(self._retry_policy, sleep=self._sleep, on_retry=on_retry)

        async def attempt(number: int) -> RoundReport:
            logger.info("orchestrator.attempt number={}", number)
            controller = RoundController(
                transport=self._transport,
                catalog=self._catalog,
                executor=self._executor,
                emit=emit,
                max_tool_rounds=self._max_tool_rounds,
                extraction_keys=self._extraction_keys,
                stream_timeout_seconds=self._stream_timeout_seconds,
                operation_timeout_seconds=self._operation_timeout_seconds,
            )
            return await controller.run(RoundState.start(history, message))

        work = asyncio.ensure_future(shell.run(attempt))
        try:
            report = await self._await_or_cancel(work, cancel)
        except asyncio.CancelledError:
            if not work.done():
                work.cancel()
            if cancel is None or not cancel.is_set():
                raise
            logger.info("orchestrator.cancelled attempts={}", shell.attempts)
            emit(Cancelled())
            return OrchestrationOutcome(status=OutcomeStatus.CANCELLED, attempts=shell.attempts)
        except Exception as exc:
            logger.error("orchestrator.failed attempts={} error={}: {}", shell.attempts, type(exc).__name__, exc)
            emit(FatalError(message=str(exc) or type(exc).__name__, error_type=type(exc).__name__))
            return OrchestrationOutcome(status=OutcomeStatus.FAILED, error=exc, attempts=shell.attempts)

        result = self._validator(report.final_text)
        self._emit_result(result, emit)
        return OrchestrationOutcome(
            status=OutcomeStatus.COMPLETED,
            result=result,
            attempts=shell.attempts,
            rounds=report.rounds,
            operations=report.operations,
            round_cap_reached=report.round_cap_reached,
        )

    @staticmethod
    async def _await_or_cancel(work: asyncio.Future[RoundReport], cancel: asyncio.Event | None) -> RoundReport:
        if cancel is None:
            return await work
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if cancel.is_set() and not work.done():
            work.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await work
            raise asyncio.CancelledError
        return await work

    @staticmethod
    def _emit_result(result: BaseModel, emit: _SafeSink) -> None:
        if isinstance(result, TriageResult) and result.is_medical_query and result.needs_follow_up:
            if result.follow_up_question:
                emit(
                    FollowUp(
                        question=result.follow_up_question,
                        options=[option.model_dump() for option in result.follow_up_options or []],
                    )
                )
        emit(FinalResult(data=result.model_dump(mode="json")))

    def _record(self, outcome: OrchestrationOutcome, latency_ms: float) -> None:
        if self._telemetry is None:
            return
        result = outcome.result if isinstance(outcome.result, TriageResult) else None
        self._telemetry.record(
            RunRecord(
                status=str(outcome.status),
                latency_ms=round(latency_ms, 1),
                attempts=outcome.attempts,
                rounds=outcome.rounds,
                operations=outcome.operations,
                severity=result.severity if result else None,
                confidence=result.confidence if result else None,
                is_medical_query=result.is_medical_query if result else None,
                needs_follow_up=result.needs_follow_up if result else None,
                round_cap_reached=outcome.round_cap_reached,
                error_type=type(outcome.error).__name__ if outcome.error is not None else None,
            )
        )


class _SafeSink:
    """Forward events to the caller's sink; a failing sink never breaks a run."""

    def __init__(self, sink: EventSink | None) -> None:
        self._sink = sink

    def __call__(self, event: OrchestratorEvent) -> None:
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception:
            logger.exception("orchestrator.sink.error event={}", event.type)
