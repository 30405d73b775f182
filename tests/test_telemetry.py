from __future__ import annotations

from toolstream.telemetry import DAY_SECONDS, RunRecord, TelemetryAggregator

NOW = 1_700_000_000.0


def _aggregator(**kwargs) -> TelemetryAggregator:
    return TelemetryAggregator(clock=lambda: NOW, **kwargs)


def test_snapshot_summarizes_recent_runs() -> None:
    telemetry = _aggregator()
    telemetry.record(RunRecord(status="completed", latency_ms=100, severity="routine", needs_follow_up=True, is_medical_query=True, operations=2, timestamp=NOW - 10))
    telemetry.record(RunRecord(status="completed", latency_ms=300, severity="urgent", is_medical_query=False, attempts=2, timestamp=NOW - 20))
    telemetry.record(RunRecord(status="failed", latency_ms=50, error_type="BackendStatusError", timestamp=NOW - 30))
    telemetry.record(RunRecord(status="cancelled", latency_ms=5, round_cap_reached=True, timestamp=NOW - 2 * 60 * 60))
    telemetry.record(RunRecord(status="completed", latency_ms=999, severity="emergency", timestamp=NOW - DAY_SECONDS - 1))

    snapshot = telemetry.snapshot()

    assert snapshot["total_records"] == 5
    assert snapshot["last_24h"] == 4
    assert snapshot["last_hour"] == 3
    assert snapshot["completed_24h"] == 2
    assert snapshot["failed_24h"] == 1
    assert snapshot["cancelled_24h"] == 1
    assert snapshot["error_rate"] == 0.25
    assert snapshot["avg_latency_ms"] == 200.0
    assert snapshot["p95_latency_ms"] == 300.0
    assert snapshot["avg_operations"] == 0.5
    assert snapshot["retried_runs_24h"] == 1
    assert snapshot["round_cap_24h"] == 1
    assert snapshot["follow_up_rate"] == 0.5
    assert snapshot["non_medical_rate"] == 0.5
    assert snapshot["severity_distribution"] == {"routine": 1, "urgent": 1}
    assert snapshot["recent"][0]["severity"] == "emergency"
    assert "message" not in snapshot["recent"][0]


def test_empty_snapshot_has_zero_rates() -> None:
    snapshot = _aggregator().snapshot()
    assert snapshot["total_records"] == 0
    assert snapshot["error_rate"] == 0.0
    assert snapshot["avg_latency_ms"] == 0.0
    assert snapshot["recent"] == []


def test_ring_is_bounded_and_flush_clears() -> None:
    telemetry = _aggregator(max_records=3)
    for latency in range(5):
        telemetry.record(RunRecord(status="completed", latency_ms=latency, timestamp=NOW))

    assert len(telemetry) == 3
    flushed = telemetry.flush()
    assert [item["latency_ms"] for item in flushed["recent"]] == [4, 3, 2]
    assert len(telemetry) == 0
    assert telemetry.snapshot()["total_records"] == 0
