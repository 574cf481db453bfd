import asyncio

import pytest

from chorus_service.core.errors import TransportError
from chorus_service.core.types import StreamState
from chorus_service.providers.scripted.provider import ScriptedProvider
from chorus_service.streaming.bridge import EventBridge, NotificationHub
from chorus_service.streaming.registry import StreamRegistry

MESSAGES = [{"role": "user", "content": "hi"}]


def build(turns, **kwargs):
    hub = NotificationHub()
    provider = ScriptedProvider(turns, hub=hub, **kwargs)
    return StreamRegistry(provider, EventBridge(hub)), provider, hub


@pytest.mark.asyncio
async def test_start_for_streams_and_removes_on_completion():
    registry, provider, hub = build([{"chunks": ["Hel", "lo"]}])
    session = await registry.start_for("conv-1", "scripted", "m", MESSAGES)

    assert session.session_id.startswith("stream-")
    assert session.state == StreamState.STREAMING
    assert registry.active_for("conv-1") is session

    outcome = await asyncio.wait_for(session.wait(), 1)
    assert outcome.state == StreamState.COMPLETED
    assert outcome.content == "Hello"
    assert registry.get(session.session_id) is None
    assert len(registry) == 0
    assert hub.listener_count() == 0


@pytest.mark.asyncio
async def test_start_failure_raises_transport_error():
    registry, provider, hub = build([{"start_error": "model unavailable"}])
    with pytest.raises(TransportError) as exc:
        await registry.start_for("conv-1", "scripted", "m", MESSAGES)
    assert "model unavailable" in str(exc.value)
    assert len(registry) == 0
    assert hub.listener_count() == 0


@pytest.mark.asyncio
async def test_new_stream_cancels_and_replaces_prior():
    registry, provider, _ = build([{"chunks": ["a"], "hang": True}, {"chunks": ["b"]}])
    first = await registry.start_for("conv-1", "scripted", "m", MESSAGES)
    await asyncio.sleep(0.01)
    second = await registry.start_for("conv-1", "scripted", "m", MESSAGES)

    assert first.session_id != second.session_id
    assert first.state == StreamState.CANCELLED
    assert registry.active_for("conv-1") is second
    assert len([s for s in registry.sessions() if s.conversation_id == "conv-1"]) == 1

    outcome = await asyncio.wait_for(second.wait(), 1)
    assert outcome.state == StreamState.COMPLETED
    assert outcome.content == "b"
    await asyncio.sleep(0)
    assert first.session_id in provider.cancelled


@pytest.mark.asyncio
async def test_cancel_then_restart_only_second_completes():
    registry, provider, _ = build([{"chunks": ["one"], "hang": True}, {"chunks": ["two"]}])
    first = await registry.start_for("conv-1", "scripted", "m", MESSAGES)
    assert registry.cancel(first.session_id) is True
    second = await registry.start_for("conv-1", "scripted", "m", MESSAGES)

    first_outcome = await first.wait()
    second_outcome = await asyncio.wait_for(second.wait(), 1)
    assert first.session_id != second.session_id
    assert first_outcome.state == StreamState.CANCELLED
    assert second_outcome.state == StreamState.COMPLETED
    assert second_outcome.content == "two"


@pytest.mark.asyncio
async def test_independent_conversations_run_concurrently():
    registry, _, _ = build([{"chunks": ["x"], "delay": 0.01}, {"chunks": ["y"], "delay": 0.01}])
    a = await registry.start_for("conv-a", "scripted", "m", MESSAGES)
    b = await registry.start_for("conv-b", "scripted", "m", MESSAGES)
    assert a.state == StreamState.STREAMING and b.state == StreamState.STREAMING
    outcomes = await asyncio.wait_for(asyncio.gather(a.wait(), b.wait()), 1)
    assert sorted(o.content for o in outcomes) == ["x", "y"]


@pytest.mark.asyncio
async def test_cancel_unknown_and_remove_are_idempotent():
    registry, _, _ = build([{"hang": True}])
    assert registry.cancel("stream-nope") is False
    session = await registry.start_for("conv-1", "scripted", "m", MESSAGES)
    assert registry.remove(session.session_id) is True
    assert registry.remove(session.session_id) is False
    session.cancel()
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_cancel_all_sweeps_hanging_sessions():
    registry, _, hub = build([{"hang": True}, {"hang": True}])
    a = await registry.start_for("conv-a", "scripted", "m", MESSAGES)
    b = await registry.start_for("conv-b", "scripted", "m", MESSAGES)
    assert registry.cancel_all() == 2
    assert a.state == StreamState.CANCELLED and b.state == StreamState.CANCELLED
    await asyncio.sleep(0.01)
    assert len(registry) == 0
    assert hub.listener_count() == 0


@pytest.mark.asyncio
async def test_conversation_scope_cancels_on_exit():
    registry, _, _ = build([{"hang": True}])
    async with registry.scope("conv-1"):
        session = await registry.start_for("conv-1", "scripted", "m", MESSAGES)
        assert session.is_streaming
    assert session.state == StreamState.CANCELLED
    assert registry.active_for("conv-1") is None
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_late_chunks_for_cancelled_stream_are_dropped():
    registry, provider, hub = build([{"hang": True}])
    session = await registry.start_for("conv-1", "scripted", "m", MESSAGES)
    registry.cancel_all_for("conv-1")
    hub.publish_raw("chunk", {"streamId": session.session_id, "content": "late"})
    assert session.content == ""
    await asyncio.sleep(0.01)
