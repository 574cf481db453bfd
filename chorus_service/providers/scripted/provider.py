"""
Provider that replays a fixed script of turns; one turn per started stream.

A turn is either a plain string (streamed as one chunk) or a dict:

    {
        "chunks": ["Hel", "lo"],          # text deltas, in order
        "tool_calls": [{"id", "name", "arguments"}],
        "final_content": "Hello",         # authoritative final text
        "error": "boom",                  # fail after the chunks
        "start_error": "refused",         # start_stream itself raises
        "hang": True,                     # never finish; wait to be cancelled
        "delay": 0.01,                    # pause before each chunk
    }

Every start_stream call is recorded in ``calls`` so tests can inspect the
messages and options each round was started with.
"""
import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from chorus_service.core.errors import TransportError
from chorus_service.providers.base import Delta, FinalText, TaskStreamingProvider
from chorus_service.streaming.bridge import NotificationHub

Turn = Union[str, Dict[str, Any]]


class ScriptedProvider(TaskStreamingProvider):
    def __init__(
        self,
        turns: Optional[List[Turn]] = None,
        hub: Optional[NotificationHub] = None,
        repeat_last: bool = False,
        models: Optional[List[str]] = None,
    ):
        super().__init__(hub)
        self.turns: List[Turn] = list(turns or [])
        self.repeat_last = repeat_last
        self.models = models or ["scripted"]
        self.calls: List[Dict[str, Any]] = []
        self.cancelled: List[str] = []
        self._next = 0
        self._assigned: Dict[str, Dict[str, Any]] = {}

    def _take_turn(self) -> Dict[str, Any]:
        if self._next < len(self.turns):
            turn = self.turns[self._next]
            self._next += 1
        elif self.repeat_last and self.turns:
            turn = self.turns[-1]
        else:
            turn = {}
        return {"chunks": [turn]} if isinstance(turn, str) else dict(turn)

    async def start_stream(
        self,
        stream_id: str,
        provider: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.calls.append({"stream_id": stream_id, "provider": provider, "model": model,
                           "messages": list(messages), "options": dict(options or {})})
        turn = self._take_turn()
        if turn.get("start_error"):
            raise TransportError(str(turn["start_error"]))
        self._assigned[stream_id] = turn
        await super().start_stream(stream_id, provider, model, messages, options)

    async def generate(
        self,
        stream_id: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Dict[str, Any],
    ) -> AsyncIterator[Delta]:
        turn = self._assigned.pop(stream_id, {})
        delay = float(turn.get("delay", 0))
        for chunk in turn.get("chunks", []):
            # Yield control so the caller sees the session start first
            await asyncio.sleep(delay)
            yield chunk
        if turn.get("error"):
            raise RuntimeError(turn["error"])
        if turn.get("hang"):
            await asyncio.Event().wait()
        if turn.get("tool_calls"):
            yield list(turn["tool_calls"])
        if turn.get("final_content") is not None:
            yield FinalText(turn["final_content"])

    async def cancel_stream(self, stream_id: str) -> bool:
        self.cancelled.append(stream_id)
        return await super().cancel_stream(stream_id)

    def list_models(self) -> List[str]:
        return list(self.models)
