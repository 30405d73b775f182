"""Concurrent execution of one round's operation requests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from loguru import logger

from .segments import OperationRequest, OperationResult


class SideEffectExecutor(Protocol):
    """Executes one named operation. Must tolerate concurrent calls and never retry."""

    async def execute(self, name: str, args: dict[str, Any]) -> Any: ...


RequestObserver = Callable[[OperationRequest], None]
ResultObserver = Callable[[OperationResult, float], None]


class UnknownOperationError(LookupError):
    """Raised by executors for operation names outside the catalog."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown operation: {name}")


def error_payload(kind: str, message: str) -> dict[str, str]:
    return {"type": kind, "message": message}


class ToolDispatcher:
    """Run a batch of independent operations and correlate their results.

    Every request gets exactly one result. Failures, unknown names and
    timeouts become error results; nothing is retried.
    """

    def __init__(
        self,
        executor: SideEffectExecutor,
        *,
        timeout_seconds: float | None = None,
        on_request: RequestObserver | None = None,
        on_result: ResultObserver | None = None,
    ) -> None:
        self._executor = executor
        self._timeout_seconds = timeout_seconds
        self._on_request = on_request
        self._on_result = on_result

    async def dispatch(self, requests: Sequence[OperationRequest]) -> list[OperationResult]:
        if not requests:
            return []
        results: list[OperationResult | None] = [None] * len(requests)

        async def _run(index: int, request: OperationRequest) -> None:
            results[index] = await self._run_one(request)

        logger.info("dispatch.batch.start size={}", len(requests))
        async with asyncio.TaskGroup() as group:
            for index, request in enumerate(requests):
                group.create_task(_run(index, request))
        failed = sum(1 for result in results if result is not None and not result.ok)
        logger.info("dispatch.batch.end size={} failed={}", len(requests), failed)
        return [result for result in results if result is not None]

    async def _run_one(self, request: OperationRequest) -> OperationResult:
        if self._on_request is not None:
            self._on_request(request)
        start = time.monotonic()
        try:
            async with asyncio.timeout(self._timeout_seconds):
                payload = await self._executor.execute(request.name, dict(request.args))
            result = OperationResult(id=request.id, name=request.name, payload=payload)
        except TimeoutError:
            logger.warning(
                "dispatch.operation.timeout name={} id={} timeout={}s",
                request.name,
                request.id,
                self._timeout_seconds,
            )
            message = f"Operation timed out after {self._timeout_seconds}s"
            result = OperationResult(id=request.id, name=request.name, error=error_payload("timeout", message))
        except UnknownOperationError as exc:
            logger.warning("dispatch.operation.unknown name={} id={}", request.name, request.id)
            result = OperationResult(id=request.id, name=request.name, error=error_payload("unknown_operation", str(exc)))
        except Exception as exc:
            logger.warning(
                "dispatch.operation.error name={} id={} error={}: {}",
                request.name,
                request.id,
                type(exc).__name__,
                exc,
            )
            message = f"Operation failed: {exc}"
            result = OperationResult(id=request.id, name=request.name, error=error_payload("execution_error", message))
        duration_ms = (time.monotonic() - start) * 1000
        if self._on_result is not None:
            self._on_result(result, duration_ms)
        return result
