"""In-process telemetry aggregation.

The aggregator is owned by whoever builds the orchestrator and is passed in
explicitly. Records carry no message text.
"""

from __future__ import annotations

import threading
import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any

DEFAULT_MAX_RECORDS = 10_000
DAY_SECONDS = 24 * 60 * 60
HOUR_SECONDS = 60 * 60
RECENT_LIMIT = 20


@dataclass(frozen=True)
class RunRecord:
    status: str
    latency_ms: float
    attempts: int = 1
    rounds: int = 0
    operations: int = 0
    severity: str | None = None
    confidence: float | None = None
    is_medical_query: bool | None = None
    needs_follow_up: bool | None = None
    round_cap_reached: bool = False
    error_type: str | None = None
    timestamp: float = field(default_factory=time.time)


def _percentile(values: list[float], fraction: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, int(len(ordered) * fraction))
    return ordered[index]


class TelemetryAggregator:
    """Bounded ring of run records with windowed summaries."""

    def __init__(self, *, max_records: int = DEFAULT_MAX_RECORDS, clock: Callable[[], float] = time.time) -> None:
        self._records: deque[RunRecord] = deque(maxlen=max_records)
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def record(self, record: RunRecord) -> None:
        with self._lock:
            self._records.append(record)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def flush(self) -> dict[str, Any]:
        """Return the current snapshot and clear every record."""
        with self._lock:
            snapshot = self._snapshot_locked()
            self._records.clear()
        return snapshot

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> dict[str, Any]:
        now = self._clock()
        records = list(self._records)
        day = [record for record in records if now - record.timestamp <= DAY_SECONDS]
        hour = [record for record in day if now - record.timestamp <= HOUR_SECONDS]
        completed = [record for record in day if record.status == "completed"]
        latencies = [record.latency_ms for record in completed]
        failures = sum(1 for record in day if record.status == "failed")
        follow_ups = sum(1 for record in completed if record.needs_follow_up)
        non_medical = sum(1 for record in completed if record.is_medical_query is False)
        severity = Counter(record.severity for record in completed if record.severity is not None)
        return {
            "total_records": len(records),
            "last_24h": len(day),
            "last_hour": len(hour),
            "completed_24h": len(completed),
            "failed_24h": failures,
            "cancelled_24h": sum(1 for record in day if record.status == "cancelled"),
            "error_rate": round(failures / len(day), 4) if day else 0.0,
            "avg_latency_ms": round(sum(latencies) / len(latencies), 1) if latencies else 0.0,
            "p95_latency_ms": round(_percentile(latencies, 0.95), 1),
            "avg_operations": round(sum(record.operations for record in day) / len(day), 2) if day else 0.0,
            "retried_runs_24h": sum(1 for record in day if record.attempts > 1),
            "round_cap_24h": sum(1 for record in day if record.round_cap_reached),
            "follow_up_rate": round(follow_ups / len(completed), 4) if completed else 0.0,
            "non_medical_rate": round(non_medical / len(completed), 4) if completed else 0.0,
            "severity_distribution": dict(severity),
            "recent": [asdict(record) for record in records[-RECENT_LIMIT:]][::-1],
        }
