"""
Lifecycle of one in-flight generation.

States move one way only: ``idle -> streaming -> completed | cancelled | errored``.
Once terminal, the session ignores every further chunk, error or end signal,
notifies each observer exactly once with the final snapshot, resolves its
waiters and hands itself back to the registry for removal.
"""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from chorus_service.core.logging import logger
from chorus_service.core.types import StreamOutcome, StreamSnapshot, StreamState, ToolCallRequest

Observer = Callable[[StreamSnapshot], None]
Canceller = Callable[[str], Awaitable[bool]]


class StreamSession:
    def __init__(
        self,
        session_id: str,
        conversation_id: str,
        provider: str,
        model: str,
        canceller: Optional[Canceller] = None,
        on_terminal: Optional[Callable[["StreamSession"], None]] = None,
    ):
        self.session_id = session_id
        self.conversation_id = conversation_id
        self.provider = provider
        self.model = model
        self.state = StreamState.IDLE
        self.error: Optional[str] = None
        self.tool_calls: Tuple[ToolCallRequest, ...] = ()
        self.created_at = time.time()

        self._parts: List[str] = []
        self._final_content: Optional[str] = None
        self._observers: Dict[int, Observer] = {}
        self._next_observer = 0
        self._waiters: List[asyncio.Future] = []
        self._outcome: Optional[StreamOutcome] = None
        self._canceller = canceller
        self._on_terminal = on_terminal
        self._upstream_cancel: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<StreamSession {self.session_id} conv={self.conversation_id} state={self.state}>"

    @property
    def content(self) -> str:
        if self._final_content is not None:
            return self._final_content
        return "".join(self._parts)

    @property
    def is_streaming(self) -> bool:
        return not self.state.is_terminal

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def outcome(self) -> Optional[StreamOutcome]:
        return self._outcome

    def snapshot(self) -> StreamSnapshot:
        return StreamSnapshot(
            session_id=self.session_id,
            is_streaming=self.is_streaming,
            content=self.content,
            state=self.state,
        )

    # --- Observers ---

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        """
        Attach an observer and return a function that detaches it.

        Observers attached after the session has finished get the final
        snapshot once, immediately, and are not retained.
        """
        if self.is_terminal:
            self._call_observer(observer, self.snapshot())
            return lambda: None

        token = self._next_observer
        self._next_observer += 1
        self._observers[token] = observer

        def _remove() -> None:
            self._observers.pop(token, None)

        return _remove

    def _call_observer(self, observer: Observer, snap: StreamSnapshot) -> None:
        try:
            observer(snap)
        except Exception:
            logger.exception("Observer failed for stream %s", self.session_id)

    def _notify(self) -> None:
        snap = self.snapshot()
        for observer in list(self._observers.values()):
            self._call_observer(observer, snap)

    # --- Transitions ---

    def mark_started(self) -> None:
        if self.state == StreamState.IDLE:
            self.state = StreamState.STREAMING
            logger.info("Stream %s started (%s/%s)", self.session_id, self.provider, self.model)

    def on_chunk(
        self,
        text: str,
        is_final: bool = False,
        tool_calls: Iterable[ToolCallRequest] = (),
        final_content: Optional[str] = None,
    ) -> Optional[StreamOutcome]:
        """
        Append a chunk. A final chunk completes the session and returns the
        outcome (final content plus tool calls); otherwise returns None.
        """
        if self.is_terminal:
            logger.debug("Discarding chunk for %s stream %s", self.state, self.session_id)
            return None

        self.state = StreamState.STREAMING
        if text:
            self._parts.append(text)
        tool_calls = tuple(tool_calls)
        if tool_calls:
            self.tool_calls = self.tool_calls + tool_calls

        if not is_final:
            logger.debug("Stream %s chunk: %d chars (total %d)", self.session_id, len(text or ""), len(self.content))
            self._notify()
            return None

        if final_content is not None:
            self._final_content = final_content
        return self._finish(StreamState.COMPLETED)

    def on_end(self, final_content: Optional[str] = None, tool_calls: Iterable[ToolCallRequest] = ()) -> Optional[StreamOutcome]:
        return self.on_chunk("", is_final=True, tool_calls=tool_calls, final_content=final_content)

    def on_error(self, message: str) -> Optional[StreamOutcome]:
        if self.is_terminal:
            logger.debug("Discarding error for %s stream %s: %s", self.state, self.session_id, message)
            return None
        self.error = message or "Unknown stream error"
        return self._finish(StreamState.ERRORED)

    def cancel(self) -> bool:
        """
        Mark the session cancelled and ask the upstream to stop without waiting
        for it. Returns False if the session had already finished.
        """
        if self.is_terminal:
            return False
        self._finish(StreamState.CANCELLED)
        self._request_upstream_cancel()
        return True

    def _request_upstream_cancel(self) -> None:
        if self._canceller is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running loop; upstream not told to cancel stream %s", self.session_id)
            return
        self._upstream_cancel = loop.create_task(self._canceller(self.session_id))
        self._upstream_cancel.add_done_callback(self._log_upstream_cancel)

    def _log_upstream_cancel(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Upstream cancel for stream %s failed: %s", self.session_id, exc)

    def _finish(self, state: StreamState) -> StreamOutcome:
        self.state = state
        self._outcome = StreamOutcome(
            session_id=self.session_id,
            state=state,
            content=self.content,
            tool_calls=self.tool_calls,
            error=self.error,
        )
        logger.info(
            "Stream %s %s: %d chars, %d tool calls%s",
            self.session_id, state, len(self.content), len(self.tool_calls),
            f", error={self.error}" if self.error else "",
        )

        self._notify()
        self._observers.clear()

        for fut in self._waiters:
            if not fut.done():
                fut.set_result(self._outcome)
        self._waiters.clear()

        if self._on_terminal is not None:
            self._on_terminal(self)
        return self._outcome

    async def wait(self, timeout: Optional[float] = None) -> StreamOutcome:
        """Suspend until the session reaches a terminal state."""
        if self._outcome is not None:
            return self._outcome
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            return await asyncio.wait_for(asyncio.shield(fut), timeout)
        finally:
            if fut in self._waiters and not fut.done():
                self._waiters.remove(fut)
