import pytest

from chorus_service.context.conversation import Conversation
from chorus_service.context.memory_store import ConversationStore
from chorus_service.core.types import Role, ToolCallRequest, ToolInvocation


def test_messages_keep_append_order():
    conv = Conversation("c1")
    conv.add_system("be brief")
    conv.add_user("hi")
    conv.add_assistant("hello")
    assert [m.role for m in conv.messages] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
    assert conv.title == "hi"
    assert conv.latest_assistant().content == "hello"


def test_draft_commit_and_discard():
    conv = Conversation()
    conv.set_draft("Hel")
    conv.set_draft("Hello")
    msg = conv.commit_draft([ToolCallRequest("c1", "t", "{}")])
    assert msg.content == "Hello"
    assert msg.tool_calls[0].id == "c1"
    assert conv.draft is None
    conv.set_draft("abandoned")
    conv.discard_draft()
    assert conv.draft is None
    assert len(conv) == 1


def test_tool_result_requires_resolution():
    conv = Conversation()
    inv = ToolInvocation("c1", "t")
    with pytest.raises(ValueError):
        conv.add_tool_result(inv)
    inv.resolve({"ok": True})
    msg = conv.add_tool_result(inv)
    assert msg.role == Role.TOOL
    assert conv.to_provider_messages()[-1]["tool_call_id"] == "c1"


def test_system_prompt_inserted_once_at_front():
    conv = Conversation()
    conv.add_user("hi")
    conv.ensure_system_prompt("sys")
    conv.ensure_system_prompt("sys again")
    assert [m.content for m in conv.messages] == ["sys", "hi"]


def test_store_crud():
    store = ConversationStore()
    a = store.create(system_prompt="sys")
    b = store.get_or_create("fixed-id")
    assert store.get_or_create("fixed-id") is b
    assert store.get(a.id).messages[0].content == "sys"
    assert {c.id for c in store.list()} == {a.id, "fixed-id"}
    assert store.delete(a.id) is True
    assert store.delete(a.id) is False
