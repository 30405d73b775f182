from __future__ import annotations

from typing import Any

from toolstream.core.decoder import SegmentDecoder, parse_tool_arguments
from toolstream.core.segments import (
    ReasoningSegment,
    RoundEnd,
    RoundOutcome,
    SegmentDelta,
    SegmentEnd,
    SegmentKind,
    SegmentStart,
    TextSegment,
    ToolInvocationSegment,
)


def _feed(decoder: SegmentDecoder, signals: list[Any]):
    result = None
    for signal in signals:
        result = decoder.feed(signal)
    return result


def test_decoder_builds_ordered_segments_and_completes() -> None:
    deltas: list[tuple[SegmentKind, str, str]] = []
    closed: list[object] = []
    decoder = SegmentDecoder(on_delta=lambda *args: deltas.append(args), on_close=closed.append)

    result = _feed(
        decoder,
        [
            SegmentStart(SegmentKind.REASONING),
            SegmentDelta(SegmentKind.REASONING, "think "),
            SegmentDelta(SegmentKind.REASONING, "more"),
            SegmentEnd(SegmentKind.REASONING, signature="sig-1"),
            SegmentStart(SegmentKind.TEXT),
            SegmentDelta(SegmentKind.TEXT, "Hello"),
            SegmentDelta(SegmentKind.TEXT, " world"),
            SegmentEnd(SegmentKind.TEXT),
            RoundEnd("end_turn"),
        ],
    )

    assert result is not None
    assert result.outcome is RoundOutcome.COMPLETE
    assert result.segments == (
        ReasoningSegment(text="think more", signature="sig-1"),
        TextSegment(text="Hello world"),
    )
    assert result.text == "Hello world"
    assert deltas[-1] == (SegmentKind.TEXT, " world", "Hello world")
    assert [type(segment) for segment in closed] == [ReasoningSegment, TextSegment]


def test_round_with_tool_invocation_is_tool_requested_and_parses_args() -> None:
    decoder = SegmentDecoder()
    result = _feed(
        decoder,
        [
            SegmentStart(SegmentKind.TEXT),
            SegmentDelta(SegmentKind.TEXT, "checking"),
            SegmentEnd(SegmentKind.TEXT),
            SegmentStart(SegmentKind.TOOL_INVOCATION, tool_id="t1", tool_name="lookup_a"),
            SegmentDelta(SegmentKind.TOOL_INVOCATION, '{"city": '),
            SegmentDelta(SegmentKind.TOOL_INVOCATION, '"Pune"}'),
            SegmentEnd(SegmentKind.TOOL_INVOCATION),
            RoundEnd("tool_use"),
        ],
    )

    assert result is not None
    assert result.outcome is RoundOutcome.TOOL_REQUESTED
    assert result.segments[-1] == ToolInvocationSegment(id="t1", name="lookup_a", args={"city": "Pune"})
    assert [request.id for request in result.requests] == ["t1"]


def test_outcome_ignores_backend_stop_reason() -> None:
    decoder = SegmentDecoder()
    result = _feed(
        decoder,
        [SegmentStart(SegmentKind.TEXT), SegmentDelta(SegmentKind.TEXT, "{}"), SegmentEnd(SegmentKind.TEXT), RoundEnd("tool_use")],
    )
    assert result is not None
    assert result.outcome is RoundOutcome.COMPLETE


def test_protocol_violations_are_dropped() -> None:
    deltas: list[str] = []
    decoder = SegmentDecoder(on_delta=lambda kind, fragment, accumulated: deltas.append(fragment))

    assert decoder.feed(SegmentDelta(SegmentKind.TEXT, "orphan")) is None
    assert decoder.feed(SegmentEnd(SegmentKind.TEXT)) is None
    decoder.feed(SegmentStart(SegmentKind.TEXT))
    decoder.feed(SegmentDelta(SegmentKind.REASONING, "wrong kind"))
    decoder.feed(SegmentDelta(SegmentKind.TEXT, "kept"))
    decoder.feed(SegmentEnd(SegmentKind.REASONING))
    result = decoder.feed(RoundEnd())

    assert deltas == ["kept"]
    assert result is not None
    assert result.segments == (TextSegment(text="kept"),)


def test_start_while_open_closes_previous_segment() -> None:
    decoder = SegmentDecoder()
    result = _feed(
        decoder,
        [
            SegmentStart(SegmentKind.TEXT),
            SegmentDelta(SegmentKind.TEXT, "partial"),
            SegmentStart(SegmentKind.TOOL_INVOCATION, tool_id="t1", tool_name="lookup_a"),
            SegmentDelta(SegmentKind.TOOL_INVOCATION, "{}"),
            RoundEnd("tool_use"),
        ],
    )

    assert result is not None
    assert result.segments == (
        TextSegment(text="partial"),
        ToolInvocationSegment(id="t1", name="lookup_a", args={}),
    )
    assert result.outcome is RoundOutcome.TOOL_REQUESTED
    assert decoder.open_kind is None


def test_signals_after_round_end_are_ignored() -> None:
    decoder = SegmentDecoder()
    assert decoder.feed(RoundEnd()) is not None
    assert decoder.feed(SegmentStart(SegmentKind.TEXT)) is None
    assert decoder.segments == ()


def test_parse_tool_arguments_falls_back_to_empty_object() -> None:
    assert parse_tool_arguments("") == {}
    assert parse_tool_arguments('{"a": 1') == {}
    assert parse_tool_arguments("[1, 2]") == {}
    assert parse_tool_arguments('{"a": 1}') == {"a": 1}
