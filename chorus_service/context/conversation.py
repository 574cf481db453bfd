"""Ordered message log for one conversation."""
from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from chorus_service.core.types import Message, Role, ToolCallRequest, ToolInvocation


class Conversation:
    """
    Append-only list of frozen Messages.

    The only mutable part is the assistant draft: the text of the reply that is
    currently streaming. ``commit_draft`` freezes it into a Message.
    """

    def __init__(self, conversation_id: Optional[str] = None, messages: Iterable[Message] = (), title: str = ""):
        self.id = conversation_id or uuid.uuid4().hex
        self.title = title
        self.created_at = time.time()
        self.updated_at = self.created_at
        self._messages: List[Message] = list(messages)
        self.draft: Optional[str] = None

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        self.updated_at = time.time()
        return message

    def add_system(self, content: str) -> Message:
        return self.append(Message(role=Role.SYSTEM, content=content))

    def ensure_system_prompt(self, prompt: str) -> None:
        if prompt and not any(m.role == Role.SYSTEM for m in self._messages):
            self._messages.insert(0, Message(role=Role.SYSTEM, content=prompt))

    def add_user(self, content: str) -> Message:
        if not self.title:
            self.title = content[:60]
        return self.append(Message(role=Role.USER, content=content))

    def add_assistant(self, content: str, tool_calls: Iterable[ToolCallRequest] = ()) -> Message:
        self.draft = None
        return self.append(Message(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls)))

    def add_tool_result(self, invocation: ToolInvocation) -> Message:
        if not invocation.resolved:
            raise ValueError(f"Tool invocation {invocation.call_id} is not resolved")
        return self.append(invocation.to_message())

    # --- Streaming draft ---

    def set_draft(self, content: str) -> None:
        self.draft = content

    def commit_draft(self, tool_calls: Iterable[ToolCallRequest] = ()) -> Message:
        return self.add_assistant(self.draft or "", tool_calls)

    def discard_draft(self) -> None:
        self.draft = None

    # --- Views ---

    def latest_assistant(self) -> Optional[Message]:
        for m in reversed(self._messages):
            if m.role == Role.ASSISTANT:
                return m
        return None

    def to_provider_messages(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message_count": len(self._messages),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
