"""
Routing of provider notifications to stream sessions.

NotificationHub is the push source: providers publish chunk, error and end
notifications to it (raw payloads are decoded once, here). EventBridge attaches
one Subscription per consumer; each subscription holds the three listeners for
a single session and releases them together.
"""
from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional

from chorus_service.core.logging import logger
from chorus_service.streaming.notifications import (
    Notification,
    NotificationDecodeError,
    NotificationKind,
    decode_notification,
)
from chorus_service.streaming.session import StreamSession

Listener = Callable[[Notification], None]


class NotificationHub:
    """In-process pub/sub for stream notifications, keyed by kind."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._listeners: Dict[NotificationKind, List[Listener]] = {k: [] for k in NotificationKind}
        self._lock = threading.RLock()
        self._loop = loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def on(self, kind: NotificationKind, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        kind = NotificationKind(kind)
        with self._lock:
            self._listeners[kind].append(listener)

        def _off() -> None:
            with self._lock:
                try:
                    self._listeners[kind].remove(listener)
                except ValueError:
                    pass

        return _off

    def listener_count(self, kind: Optional[NotificationKind] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._listeners[NotificationKind(kind)])
            return sum(len(v) for v in self._listeners.values())

    def publish(self, notification: Notification) -> None:
        with self._lock:
            listeners = list(self._listeners[notification.kind])
        for listener in listeners:
            try:
                listener(notification)
            except Exception:
                logger.exception("Listener failed for %s notification on %s", notification.kind, notification.stream_id)

    def publish_raw(self, kind: str, payload: Dict[str, Any]) -> None:
        """Decode a wire payload and publish it. Malformed payloads are logged and dropped."""
        try:
            notification = decode_notification(kind, payload)
        except NotificationDecodeError as e:
            logger.warning("Dropping notification: %s", e)
            return
        self.publish(notification)

    def publish_threadsafe(self, notification: Notification) -> None:
        """Hand a notification produced on a foreign thread to the bound loop."""
        if self._loop is None:
            raise RuntimeError("NotificationHub has no bound event loop")
        self._loop.call_soon_threadsafe(self.publish, notification)


class Subscription:
    """The three listeners for one session. Releasing is idempotent."""

    def __init__(self, consumer_id: str, session_id: str, removers: List[Callable[[], None]]):
        self.consumer_id = consumer_id
        self.session_id = session_id
        self._removers = removers
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        for remove in self._removers:
            remove()
        self._removers = []
        logger.debug("Released subscription %s -> %s", self.consumer_id, self.session_id)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.release()


class EventBridge:
    def __init__(self, source: NotificationHub):
        self.source = source
        self._subs: Dict[str, Subscription] = {}
        self._lock = threading.RLock()

    @property
    def active_consumers(self) -> List[str]:
        with self._lock:
            return [c for c, s in self._subs.items() if not s.released]

    def subscription_for(self, consumer_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subs.get(consumer_id)

    def subscribe(self, consumer_id: str, session: StreamSession) -> Subscription:
        """
        Route notifications for ``session.session_id`` into the session.

        Any previous subscription held by ``consumer_id`` is released first, so a
        consumer never receives notifications for two streams at once.
        """
        session_id = session.session_id

        def _on_chunk(n: Notification) -> None:
            if n.stream_id != session_id:
                return
            session.on_chunk(n.content, is_final=n.done, tool_calls=n.tool_calls)

        def _on_error(n: Notification) -> None:
            if n.stream_id != session_id:
                return
            session.on_error(n.error)

        def _on_end(n: Notification) -> None:
            if n.stream_id != session_id:
                return
            session.on_end(n.final_content, n.tool_calls)

        with self._lock:
            prior = self._subs.pop(consumer_id, None)
            if prior is not None:
                prior.release()
            sub = Subscription(
                consumer_id,
                session_id,
                [
                    self.source.on(NotificationKind.CHUNK, _on_chunk),
                    self.source.on(NotificationKind.ERROR, _on_error),
                    self.source.on(NotificationKind.END, _on_end),
                ],
            )
            self._subs[consumer_id] = sub
        logger.debug("Subscribed %s -> %s", consumer_id, session_id)
        return sub

    def release(self, consumer_id: str, session_id: Optional[str] = None) -> bool:
        """
        Release the consumer's subscription. With ``session_id`` given, only a
        subscription for that session is released (a newer one is left alone).
        """
        with self._lock:
            sub = self._subs.get(consumer_id)
            if sub is None or (session_id is not None and sub.session_id != session_id):
                return False
            del self._subs[consumer_id]
        sub.release()
        return True

    def release_all(self) -> None:
        with self._lock:
            subs = list(self._subs.values())
            self._subs.clear()
        for sub in subs:
            sub.release()
