from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator

import pytest
from fakes import FakeExecutor, ScriptedTransport, text_round, tool_round

from toolstream.core.events import ListSink
from toolstream.core.rounds import RoundController, RoundState
from toolstream.core.segments import (
    MessageTurn,
    ModelTurn,
    OperationResult,
    OperationResultsTurn,
    SegmentDelta,
    SegmentKind,
    SegmentStart,
    StreamError,
    TextSegment,
    ToolInvocationSegment,
)
from toolstream.errors import BackendConnectionError, BackendStreamError, BackendTimeoutError, CorrelationError
from toolstream.tools.catalog import CapabilityCatalog


def _controller(transport, catalog, executor=None, sink=None, **kwargs) -> RoundController:
    return RoundController(
        transport=transport,
        catalog=catalog,
        executor=executor or FakeExecutor(handlers={"lookup_a": lambda **_: "A", "lookup_b": lambda **_: "B"}),
        emit=sink if sink is not None else ListSink(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_single_round_completes_with_text(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport([text_round('{"severity": ', '"routine"}', reasoning="hmm")])
    sink = ListSink()
    state = RoundState.start([], "I have a cough")

    report = await _controller(transport, catalog, sink=sink).run(state)

    assert report.final_text == '{"severity": "routine"}'
    assert report.rounds == 1
    assert report.operations == 0
    assert sink.types() == ["reasoning-delta", "reasoning-done", "text-delta", "text-delta"]
    assert transport.histories[0] == (MessageTurn(role="user", content="I have a cough"),)


@pytest.mark.asyncio
async def test_tool_round_dispatches_then_resumes_with_results(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport(
        [
            tool_round(("t1", "lookup_a", {"q": 1}), ("t2", "lookup_b", {}), text="checking"),
            text_round('{"severity": "urgent"}'),
        ]
    )
    sink = ListSink()

    report = await _controller(transport, catalog, sink=sink).run(RoundState.start([], "hi"))

    assert report.rounds == 2
    assert report.operations == 2
    assert report.final_text == '{"severity": "urgent"}'
    second_history = transport.histories[1]
    assert isinstance(second_history[1], ModelTurn)
    results_turn = second_history[2]
    assert isinstance(results_turn, OperationResultsTurn)
    assert [(result.id, result.payload) for result in results_turn.results] == [("t1", "A"), ("t2", "B")]
    assert sink.types().count("operation-requested") == 2
    assert sink.types().count("operation-resolved") == 2


@pytest.mark.asyncio
async def test_final_text_only_uses_last_round(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport(
        [tool_round(("t1", "lookup_a", {}), text="thinking out loud"), text_round('{"confidence": 0.5}')]
    )
    report = await _controller(transport, catalog).run(RoundState.start([], "hi"))
    assert report.final_text == '{"confidence": 0.5}'


@pytest.mark.asyncio
async def test_round_cap_terminates_with_last_text(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport([tool_round(("t", "lookup_a", {}), text="still looking")], repeat_last=True)
    sink = ListSink()

    report = await _controller(transport, catalog, sink=sink, max_tool_rounds=3).run(RoundState.start([], "hi"))

    assert transport.opened == 4
    assert report.round_cap_reached is True
    assert report.rounds == 4
    assert report.operations == 3
    assert report.final_text == "still looking"
    assert sink.types()[-1] == "round-cap-reached"
    assert sink.events[-1].unanswered == ["lookup_a"]


@pytest.mark.asyncio
async def test_zero_round_cap_never_dispatches(catalog: CapabilityCatalog) -> None:
    executor = FakeExecutor(handlers={"lookup_a": lambda **_: "A"})
    transport = ScriptedTransport([tool_round(("t", "lookup_a", {}))])

    report = await _controller(transport, catalog, executor=executor, max_tool_rounds=0).run(RoundState.start([], "x"))

    assert report.round_cap_reached is True
    assert executor.calls == []


@pytest.mark.asyncio
async def test_stream_error_signal_raises(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport([[SegmentStart(SegmentKind.TEXT), StreamError("overloaded_error", "busy")]])
    with pytest.raises(BackendStreamError) as excinfo:
        await _controller(transport, catalog).run(RoundState.start([], "hi"))
    assert excinfo.value.transient is True


@pytest.mark.asyncio
async def test_stream_without_round_end_is_a_connection_error(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport([[SegmentStart(SegmentKind.TEXT), SegmentDelta(SegmentKind.TEXT, "{")]])
    with pytest.raises(BackendConnectionError):
        await _controller(transport, catalog).run(RoundState.start([], "hi"))


@pytest.mark.asyncio
async def test_stream_timeout_is_transient(catalog: CapabilityCatalog) -> None:
    class StallingTransport:
        async def open_round_stream(self, history, catalog) -> AsyncGenerator:
            yield SegmentStart(SegmentKind.TEXT)
            await asyncio.sleep(10)

    with pytest.raises(BackendTimeoutError):
        await _controller(StallingTransport(), catalog, stream_timeout_seconds=0.01).run(RoundState.start([], "hi"))


@pytest.mark.asyncio
async def test_early_extraction_is_emitted_once_per_round(catalog: CapabilityCatalog) -> None:
    transport = ScriptedTransport([text_round('{"action_plan": {"go_to": "Vis', 'it clinic"', ', "x": 1}}')])
    sink = ListSink()

    await _controller(transport, catalog, sink=sink).run(RoundState.start([], "hi"))

    extractions = [event for event in sink.events if event.type == "early-extraction"]
    assert len(extractions) == 1
    assert extractions[0].value == "Visit clinic"
    assert sink.types().index("early-extraction") == 2


def test_round_state_rejects_mismatched_results() -> None:
    state = RoundState.start([], "hi")
    state.append_model_turn(
        [TextSegment("x"), ToolInvocationSegment(id="a", name="lookup_a"), ToolInvocationSegment(id="b", name="lookup_b")]
    )

    with pytest.raises(CorrelationError):
        state.append_operation_results([OperationResult(id="a", name="lookup_a", payload=1)])
    with pytest.raises(CorrelationError):
        state.append_operation_results(
            [
                OperationResult(id="a", name="lookup_a"),
                OperationResult(id="a", name="lookup_a"),
                OperationResult(id="b", name="lookup_b"),
            ]
        )

    turn = state.append_operation_results(
        [OperationResult(id="b", name="lookup_b"), OperationResult(id="a", name="lookup_a")]
    )
    assert len(turn.results) == 2
    assert state.outstanding_requests() == ()


def test_round_state_rejects_results_without_requests() -> None:
    state = RoundState.start([MessageTurn(role="assistant", content="earlier")], "hi")
    with pytest.raises(CorrelationError):
        state.append_operation_results([OperationResult(id="a", name="lookup_a")])
