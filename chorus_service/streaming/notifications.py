"""
Wire shapes of the provider notification stream and their typed counterparts.

Payloads arrive as loosely-typed dicts (``{"streamId": ..., "content": ...}``)
and are decoded exactly once, at the hub, into one of the frozen variants
below. Nothing past the hub sees raw dicts.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chorus_service.core.types import ToolCallRequest


class NotificationKind(StrEnum):
    CHUNK = "chunk"
    ERROR = "error"
    END = "end"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChunkPayload(_WireModel):
    stream_id: str = Field(..., alias="streamId")
    content: str = ""
    done: bool = False
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list, alias="toolCalls")


class ErrorPayload(_WireModel):
    stream_id: str = Field(..., alias="streamId")
    error: str = ""


class EndPayload(_WireModel):
    stream_id: str = Field(..., alias="streamId")
    final_content: Optional[str] = Field(None, alias="finalContent")
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list, alias="toolCalls")


@dataclass(frozen=True)
class StreamChunk:
    stream_id: str
    content: str
    done: bool = False
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    kind = NotificationKind.CHUNK


@dataclass(frozen=True)
class StreamFailure:
    stream_id: str
    error: str
    kind = NotificationKind.ERROR


@dataclass(frozen=True)
class StreamEnd:
    stream_id: str
    final_content: Optional[str] = None
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    kind = NotificationKind.END


Notification = Union[StreamChunk, StreamFailure, StreamEnd]


class NotificationDecodeError(ValueError):
    pass


def _tool_calls(raw: List[Dict[str, Any]]) -> Tuple[ToolCallRequest, ...]:
    return tuple(ToolCallRequest.from_dict(tc) for tc in raw)


def decode_notification(kind: str, payload: Dict[str, Any]) -> Notification:
    """Decode a raw ``{streamId, ...}`` payload of the given kind."""
    try:
        k = NotificationKind(kind)
    except ValueError as e:
        raise NotificationDecodeError(f"Unknown notification kind: {kind!r}") from e
    try:
        if k == NotificationKind.CHUNK:
            c = ChunkPayload.model_validate(payload)
            return StreamChunk(c.stream_id, c.content, c.done, _tool_calls(c.tool_calls))
        if k == NotificationKind.ERROR:
            err = ErrorPayload.model_validate(payload)
            return StreamFailure(err.stream_id, err.error or "Unknown stream error")
        end = EndPayload.model_validate(payload)
        return StreamEnd(end.stream_id, end.final_content, _tool_calls(end.tool_calls))
    except ValidationError as e:
        raise NotificationDecodeError(f"Malformed {k} notification: {e}") from e
