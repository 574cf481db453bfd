"""
Adapter from an async generator of deltas to push notifications.

A subclass implements ``generate(...)`` yielding:

- ``str``: a text delta, published as a chunk notification;
- ``list`` of tool-call dicts: collected and attached to the end notification;
- ``FinalText``: authoritative final content for the end notification.

Each stream runs in its own asyncio task. An exception inside ``generate``
becomes an error notification; ``cancel_stream`` cancels the task and nothing
further is published for that stream.
"""
import asyncio
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from chorus_service.core.interfaces import ModelProvider
from chorus_service.core.logging import logger
from chorus_service.core.types import ToolCallRequest
from chorus_service.streaming.bridge import NotificationHub
from chorus_service.streaming.notifications import StreamChunk, StreamEnd, StreamFailure


@dataclass(frozen=True)
class FinalText:
    content: str


Delta = Union[str, List[Dict[str, Any]], FinalText]


class TaskStreamingProvider(ModelProvider):
    def __init__(self, hub: Optional[NotificationHub] = None):
        self.hub = hub or NotificationHub()
        self._tasks: Dict[str, asyncio.Task] = {}

    @abstractmethod
    def generate(
        self,
        stream_id: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Dict[str, Any],
    ) -> AsyncIterator[Delta]:
        ...

    @property
    def active_streams(self) -> List[str]:
        return list(self._tasks)

    async def start_stream(
        self,
        stream_id: str,
        provider: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        if stream_id in self._tasks:
            raise ValueError(f"Stream {stream_id} is already running")
        task = asyncio.create_task(self._pump(stream_id, model, messages, dict(options or {})))
        self._tasks[stream_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(stream_id, None))

    async def _pump(self, stream_id: str, model: str, messages: List[Dict[str, Any]], options: Dict[str, Any]) -> None:
        tool_calls: List[ToolCallRequest] = []
        final: Optional[str] = None
        try:
            async for delta in self.generate(stream_id, model, messages, options):
                if isinstance(delta, FinalText):
                    final = delta.content
                elif isinstance(delta, str):
                    if delta:
                        self.hub.publish(StreamChunk(stream_id, delta))
                else:
                    tool_calls.extend(ToolCallRequest.from_dict(tc) for tc in delta)
        except asyncio.CancelledError:
            logger.info("Provider stream %s cancelled", stream_id)
            raise
        except Exception as e:
            logger.warning("Provider stream %s failed: %s", stream_id, e)
            self.hub.publish(StreamFailure(stream_id, str(e) or e.__class__.__name__))
            return
        self.hub.publish(StreamEnd(stream_id, final, tuple(tool_calls)))

    async def cancel_stream(self, stream_id: str) -> bool:
        task = self._tasks.pop(stream_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
