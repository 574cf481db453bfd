from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional, Tuple


class StreamState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.CANCELLED, StreamState.ERRORED)


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool call emitted by the model. `arguments` is still string-encoded."""

    id: str
    name: str
    arguments: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCallRequest":
        # Accept both {"id", "name", "arguments"} and {"id", "function": {...}}
        fn = data.get("function") or {}
        name = data.get("name") or fn.get("name") or ""
        args = data.get("arguments", fn.get("arguments", ""))
        if args is None:
            args = ""
        if not isinstance(args, str):
            args = json.dumps(args)
        return cls(id=str(data.get("id") or ""), name=str(name), arguments=args)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class Message:
    role: Role
    content: str = ""
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=Role(data.get("role", "user")),
            content=data.get("content") or "",
            tool_calls=tuple(ToolCallRequest.from_dict(tc) for tc in data.get("tool_calls") or []),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"role": str(self.role), "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            out["name"] = self.name
        return out


@dataclass(frozen=True)
class StreamSnapshot:
    """What an observer sees: streaming flag, accumulated content, session id."""

    session_id: str
    is_streaming: bool
    content: str
    state: StreamState


@dataclass(frozen=True)
class StreamOutcome:
    session_id: str
    state: StreamState
    content: str
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDescriptor":
        # Model-facing function schema: {"type": "function", "function": {...}}
        if isinstance(data.get("function"), dict):
            fn = data["function"]
            return cls(
                name=fn.get("name", ""),
                description=fn.get("description") or "",
                input_schema=fn.get("parameters") or {"type": "object", "properties": {}},
            )
        return cls(
            name=data.get("name", ""),
            description=data.get("description") or "",
            input_schema=data.get("inputSchema") or data.get("input_schema") or {"type": "object", "properties": {}},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}

    def to_model_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or f"Tool: {self.name}",
                "parameters": self.input_schema,
            },
        }


@dataclass
class ToolInvocation:
    """One requested tool call, resolved exactly once with a result or an error."""

    call_id: str
    name: str
    raw_arguments: str = ""
    arguments: Optional[Dict[str, Any]] = None
    result: Any = None
    error: Optional[str] = None
    _resolved: bool = field(default=False, repr=False)

    @classmethod
    def from_request(cls, request: ToolCallRequest) -> "ToolInvocation":
        return cls(call_id=request.id, name=request.name, raw_arguments=request.arguments)

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def ok(self) -> bool:
        return self._resolved and self.error is None

    def resolve(self, result: Any) -> None:
        if self._resolved:
            raise RuntimeError(f"Tool invocation {self.call_id} already resolved")
        self.result = result
        self._resolved = True

    def fail(self, error: str) -> None:
        if self._resolved:
            raise RuntimeError(f"Tool invocation {self.call_id} already resolved")
        self.error = error
        self._resolved = True

    def payload(self) -> Any:
        return {"error": self.error} if self.error is not None else self.result

    def to_message(self) -> Message:
        payload = self.payload()
        content = payload if isinstance(payload, str) else json.dumps(payload, default=str)
        return Message(role=Role.TOOL, content=content, tool_call_id=self.call_id, name=self.name)


@dataclass
class ToolCallRound:
    index: int
    requests: List[ToolCallRequest] = field(default_factory=list)
    invocations: List[ToolInvocation] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return len(self.invocations) == len(self.requests) and all(i.resolved for i in self.invocations)
