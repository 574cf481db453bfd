import asyncio

import pytest

from chorus_service.core.types import StreamState, ToolCallRequest
from chorus_service.streaming.session import StreamSession


def make_session(**kwargs):
    return StreamSession("stream-1", "conv-1", "dummy", "m", **kwargs)


def test_chunks_accumulate_in_order():
    s = make_session()
    s.mark_started()
    s.on_chunk("Hel")
    s.on_chunk("lo")
    assert s.state == StreamState.STREAMING
    assert s.content == "Hello"


def test_chunk_while_idle_starts_streaming():
    s = make_session()
    assert s.state == StreamState.IDLE
    s.on_chunk("early")
    assert s.state == StreamState.STREAMING
    assert s.content == "early"


def test_final_chunk_completes_with_tool_calls():
    s = make_session()
    s.mark_started()
    call = ToolCallRequest(id="c1", name="convert_temperature", arguments="{}")
    outcome = s.on_chunk("done", is_final=True, tool_calls=[call])
    assert s.state == StreamState.COMPLETED
    assert outcome.content == "done"
    assert outcome.tool_calls == (call,)


def test_final_content_replaces_streamed_text_once():
    s = make_session()
    seen = []
    s.add_observer(seen.append)
    s.mark_started()
    s.on_chunk("Hel")
    s.on_chunk("lo")
    s.on_chunk("")
    outcome = s.on_end(final_content="Hello")
    assert outcome.content == "Hello"
    assert s.content == "Hello"
    terminal = [snap for snap in seen if not snap.is_streaming]
    assert len(terminal) == 1
    assert terminal[0].content == "Hello"


def test_chunks_after_cancel_are_inert():
    s = make_session()
    seen = []
    s.add_observer(seen.append)
    s.mark_started()
    s.on_chunk("partial")
    assert s.cancel() is True
    count = len(seen)

    s.on_chunk(" more")
    s.on_chunk("", is_final=True)
    s.on_error("late error")

    assert s.state == StreamState.CANCELLED
    assert s.content == "partial"
    assert len(seen) == count


def test_cancel_twice_returns_false():
    s = make_session()
    assert s.cancel() is True
    assert s.cancel() is False


def test_error_is_terminal_and_captured():
    s = make_session()
    s.mark_started()
    outcome = s.on_error("upstream exploded")
    assert s.state == StreamState.ERRORED
    assert outcome.error == "upstream exploded"
    assert s.on_chunk("x") is None
    assert s.content == ""


def test_late_observer_gets_final_snapshot_once():
    s = make_session()
    s.on_end(final_content="all done")
    seen = []
    remove = s.add_observer(seen.append)
    assert len(seen) == 1
    assert seen[0].content == "all done"
    assert seen[0].is_streaming is False
    remove()
    s.on_chunk("ignored")
    assert len(seen) == 1


def test_removed_observer_stops_receiving():
    s = make_session()
    seen = []
    remove = s.add_observer(seen.append)
    s.on_chunk("a")
    remove()
    s.on_chunk("b")
    assert [snap.content for snap in seen] == ["a"]


def test_failing_observer_does_not_break_session():
    s = make_session()

    def boom(_snap):
        raise RuntimeError("observer bug")

    seen = []
    s.add_observer(boom)
    s.add_observer(seen.append)
    s.on_chunk("x")
    assert seen[-1].content == "x"


def test_on_terminal_called_once():
    finished = []
    s = make_session(on_terminal=finished.append)
    s.on_end()
    s.cancel()
    s.on_error("nope")
    assert finished == [s]


@pytest.mark.asyncio
async def test_wait_resolves_on_terminal():
    s = make_session()
    waiter = asyncio.create_task(s.wait())
    await asyncio.sleep(0)
    s.on_chunk("hi")
    s.on_end()
    outcome = await asyncio.wait_for(waiter, 1)
    assert outcome.state == StreamState.COMPLETED
    assert outcome.content == "hi"
    # Already finished: returns immediately
    assert (await s.wait()).content == "hi"


@pytest.mark.asyncio
async def test_cancel_requests_upstream_without_waiting():
    gate = asyncio.Event()
    calls = []

    async def canceller(stream_id):
        calls.append(stream_id)
        await gate.wait()
        return True

    s = make_session(canceller=canceller)
    s.mark_started()
    assert s.cancel() is True
    # cancel() returned before the upstream acknowledged
    assert s.state == StreamState.CANCELLED
    await asyncio.sleep(0)
    assert calls == ["stream-1"]
    gate.set()
    await asyncio.sleep(0)
