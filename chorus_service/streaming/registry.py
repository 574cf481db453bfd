"""
Ownership of live stream sessions.

The registry is the only place sessions are created. It keeps at most one
active session per conversation: starting a new stream for a conversation
cancels the previous one first. Sessions remove themselves once terminal.
"""
from __future__ import annotations

import asyncio
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from chorus_service.core.errors import TransportError, classify_error
from chorus_service.core.interfaces import ModelProvider
from chorus_service.core.logging import logger
from chorus_service.streaming.bridge import EventBridge
from chorus_service.streaming.session import Observer, StreamSession


def new_stream_id() -> str:
    return f"stream-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class StreamRegistry:
    def __init__(
        self,
        provider: ModelProvider,
        bridge: EventBridge,
        start_timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.bridge = bridge
        self.start_timeout = start_timeout
        self._sessions: Dict[str, StreamSession] = {}
        self._by_conversation: Dict[str, str] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get(self, session_id: str) -> Optional[StreamSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def active_for(self, conversation_id: str) -> Optional[StreamSession]:
        with self._lock:
            sid = self._by_conversation.get(conversation_id)
            return self._sessions.get(sid) if sid else None

    def sessions(self) -> List[StreamSession]:
        with self._lock:
            return list(self._sessions.values())

    def _register(self, session: StreamSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session
            self._by_conversation[session.conversation_id] = session.session_id

    def remove(self, session_id: str) -> bool:
        """Forget a session. Safe to call more than once."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            if self._by_conversation.get(session.conversation_id) == session_id:
                del self._by_conversation[session.conversation_id]
        self.bridge.release(session.conversation_id, session_id)
        return True

    def _on_terminal(self, session: StreamSession) -> None:
        self.remove(session.session_id)

    async def start_for(
        self,
        conversation_id: str,
        provider_name: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None,
        observer: Optional[Observer] = None,
    ) -> StreamSession:
        """
        Start a stream for ``conversation_id``, replacing any active one.

        The session is registered and subscribed before the provider is asked to
        start, so chunks that arrive early are not lost. Raises TransportError
        when the provider cannot initiate the stream.
        """
        prior = self.active_for(conversation_id)
        if prior is not None:
            logger.info("Replacing stream %s for conversation %s", prior.session_id, conversation_id)
            prior.cancel()

        session = StreamSession(
            new_stream_id(),
            conversation_id,
            provider_name,
            model,
            canceller=self.provider.cancel_stream,
            on_terminal=self._on_terminal,
        )
        if observer is not None:
            session.add_observer(observer)
        self._register(session)
        self.bridge.subscribe(conversation_id, session)

        try:
            await asyncio.wait_for(
                self.provider.start_stream(session.session_id, provider_name, model, messages, options or {}),
                self.start_timeout,
            )
        except asyncio.CancelledError:
            session.cancel()
            raise
        except Exception as e:
            err = classify_error(e)
            logger.error("Failed to start stream %s: %s", session.session_id, err.message)
            session.on_error(err.message)
            raise TransportError(
                f"Failed to start stream: {err.message}", status_code=err.status_code, cause=e
            ) from e

        session.mark_started()
        return session

    def cancel(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None:
            logger.debug("Cancel for unknown stream %s ignored", session_id)
            return False
        return session.cancel()

    def cancel_all_for(self, conversation_id: str) -> int:
        with self._lock:
            targets = [s for s in self._sessions.values() if s.conversation_id == conversation_id]
        return sum(1 for s in targets if s.cancel())

    def cancel_all(self) -> int:
        """Cancel every live session, including ones that never saw a terminal signal."""
        with self._lock:
            targets = list(self._sessions.values())
        count = sum(1 for s in targets if s.cancel())
        if count:
            logger.info("Swept %d live stream(s)", count)
        return count

    def scope(self, conversation_id: str) -> "ConversationScope":
        return ConversationScope(self, conversation_id)


class ConversationScope:
    """``async with registry.scope(conv_id):`` cancels the conversation's streams on exit."""

    def __init__(self, registry: StreamRegistry, conversation_id: str):
        self.registry = registry
        self.conversation_id = conversation_id

    async def __aenter__(self) -> StreamRegistry:
        return self.registry

    async def __aexit__(self, *exc) -> None:
        self.registry.cancel_all_for(self.conversation_id)
