import json

from chorus_service.protocol.orchestration.emitter import NdjsonEmitter


def test_emit_is_one_json_line():
    emitter = NdjsonEmitter("conv-1")
    raw = emitter.emit("text", {"delta": "Hi"})
    assert raw.endswith(b"\n")
    assert raw.count(b"\n") == 1
    event = json.loads(raw)
    assert event["type"] == "text"
    assert event["conversation_id"] == "conv-1"
    assert event["data"] == {"delta": "Hi"}
    assert "ts" in event


def test_emit_defaults_and_non_json_values():
    event = json.loads(NdjsonEmitter().emit("done"))
    assert event["data"] == {}
    assert event["conversation_id"] == ""
    odd = json.loads(NdjsonEmitter("c").emit("tool_completed", {"result": {1, 2}}))
    assert isinstance(odd["data"]["result"], str)
