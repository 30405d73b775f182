"""Whole-attempt retry with a bounded backoff schedule."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

import httpx
from loguru import logger

from ..errors import BackendError

T = TypeVar("T")

DEFAULT_RETRY_DELAYS: tuple[float, ...] = (1.0, 2.0, 4.0)
DEFAULT_MAX_ATTEMPTS = 4

Sleep = Callable[[float], Awaitable[None]]
RetryObserver = Callable[[int, float, BaseException], None]


def is_transient(exc: BaseException) -> bool:
    """Closed set of failures worth another attempt."""
    if isinstance(exc, BackendError):
        return exc.transient
    return isinstance(exc, TimeoutError | ConnectionError | httpx.TransportError)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS

    @classmethod
    def from_values(cls, max_attempts: int, delays: Sequence[float]) -> RetryPolicy:
        return cls(max_attempts=max(1, max_attempts), delays=tuple(float(delay) for delay in delays))

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based); the last entry repeats."""
        if not self.delays:
            return 0.0
        return self.delays[min(retry_number, len(self.delays)) - 1]


class RetryShell:
    """Run an attempt factory until it succeeds, fails fatally or runs out of attempts.

    Each call of ``attempt`` must build its state from scratch. Exhaustion
    re-raises the last failure.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        classify: Callable[[BaseException], bool] = is_transient,
        on_retry: RetryObserver | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._classify = classify
        self._on_retry = on_retry
        self.attempts = 0

    async def run(self, attempt: Callable[[int], Awaitable[T]]) -> T:
        self.attempts = 0
        while True:
            self.attempts += 1
            try:
                return await attempt(self.attempts)
            except Exception as exc:
                if not self._classify(exc):
                    logger.error(
                        "retry.fatal attempt={} error={}: {}",
                        self.attempts,
                        type(exc).__name__,
                        exc,
                    )
                    raise
                if self.attempts >= self.policy.max_attempts:
                    logger.error(
                        "retry.exhausted attempts={} error={}: {}",
                        self.attempts,
                        type(exc).__name__,
                        exc,
                    )
                    raise
                delay = self.policy.delay_for(self.attempts)
                logger.warning(
                    "retry.scheduled attempt={} next_attempt={} delay={}s error={}: {}",
                    self.attempts,
                    self.attempts + 1,
                    delay,
                    type(exc).__name__,
                    exc,
                )
                if self._on_retry is not None:
                    self._on_retry(self.attempts, delay, exc)
            await self._sleep(delay)
