import asyncio
import uuid
from typing import Any, AsyncGenerator, Dict, List, Optional

from chorus_service.context.memory_store import ConversationStore
from chorus_service.core.errors import (
    StreamRuntimeError,
    ToolLoopExceeded,
    TransportError,
    format_error_for_user,
)
from chorus_service.core.interfaces import ToolTransport
from chorus_service.core.logging import logger
from chorus_service.core.tool_registry import ToolRegistry
from chorus_service.core.types import StreamSnapshot
from chorus_service.protocol.orchestration.emitter import NdjsonEmitter
from chorus_service.protocol.orchestration.orchestrator import ToolCallOrchestrator
from chorus_service.streaming.registry import StreamRegistry
from chorus_service.tools.server import ToolServer

ERROR_DISMISS_MS = 5000


class GenerationService:
    def __init__(
        self,
        registry: StreamRegistry,
        tools: ToolRegistry,
        transport: ToolTransport,
        max_tool_rounds: int = 5,
        tool_timeout: Optional[float] = None,
        system_prompt: str = "",
        cancelled_suffix: str = " [cancelled]",
        default_provider: str = "default",
        default_model: str = "default",
        store: Optional[ConversationStore] = None,
    ):
        self.registry = registry
        self.provider = registry.provider
        self.tools = tools
        self.transport = transport
        self.tool_server = ToolServer(tools, timeout=tool_timeout)
        self.max_tool_rounds = max_tool_rounds
        self.tool_timeout = tool_timeout
        self.system_prompt = system_prompt
        self.cancelled_suffix = cancelled_suffix
        self.default_provider = default_provider
        self.default_model = default_model
        self.store = store or ConversationStore()
        self._loops: Dict[str, ToolCallOrchestrator] = {}

    # --- Raw streams ---

    async def start_stream(
        self,
        provider: Optional[str],
        model: Optional[str],
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None,
        conversation_id: Optional[str] = None,
    ) -> str:
        """Start a bare stream (no tool loop). Raises TransportError if it cannot start."""
        session = await self.registry.start_for(
            conversation_id or f"stream-owner-{uuid.uuid4().hex[:8]}",
            provider or self.default_provider,
            model or self.default_model,
            messages,
            options,
        )
        return session.session_id

    async def cancel_stream(self, stream_id: str) -> bool:
        return self.registry.cancel(stream_id)

    async def stream_events(self, stream_id: str) -> AsyncGenerator[bytes, None]:
        """NDJSON snapshots of one stream until it finishes. Empty if the id is unknown."""
        session = self.registry.get(stream_id)
        if session is None:
            return
        emitter = NdjsonEmitter(session.conversation_id)
        queue: "asyncio.Queue[StreamSnapshot]" = asyncio.Queue()
        remove = session.add_observer(queue.put_nowait)
        try:
            while True:
                snap = await queue.get()
                yield emitter.emit("snapshot", {
                    "stream_id": snap.session_id,
                    "is_streaming": snap.is_streaming,
                    "content": snap.content,
                    "state": str(snap.state),
                })
                if not snap.is_streaming:
                    yield emitter.emit("done", {"stream_id": snap.session_id, "state": str(snap.state),
                                                "error": session.error})
                    break
        finally:
            remove()

    # --- Orchestrated chat ---

    async def chat(
        self,
        prompt: str,
        conversation_id: Optional[str] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[bytes, None]:
        """
        Run one user turn through the tool loop, yielding NDJSON events:
        text, round_started, tool_started, tool_completed, tool_error,
        cancelled, error and finally done.
        """
        conversation = self.store.get_or_create(conversation_id, system_prompt=self.system_prompt)
        conversation.add_user(prompt)
        emitter = NdjsonEmitter(conversation.id)
        queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        sent: Dict[str, str] = {}

        def on_event(type_: str, data: Dict[str, Any]) -> None:
            queue.put_nowait(emitter.emit(type_, data))

        def on_snapshot(snap: StreamSnapshot) -> None:
            before = sent.get(snap.session_id, "")
            if snap.content == before:
                return
            sent[snap.session_id] = snap.content
            if snap.content.startswith(before):
                on_event("text", {"stream_id": snap.session_id, "delta": snap.content[len(before):]})
            else:
                # Final content replaced what was streamed
                on_event("text", {"stream_id": snap.session_id, "content": snap.content, "replace": True})

        orchestrator = ToolCallOrchestrator(
            self.registry,
            self.transport,
            max_rounds=self.max_tool_rounds,
            tool_timeout=self.tool_timeout,
            on_event=on_event,
        )

        async def _run() -> None:
            status = "completed"
            try:
                result = await orchestrator.run(
                    conversation,
                    provider or self.default_provider,
                    model or self.default_model,
                    options,
                    observer=on_snapshot,
                )
                if result.cancelled:
                    status = "cancelled"
                    partial = result.content
                    if partial:
                        conversation.add_assistant(partial + self.cancelled_suffix)
                    else:
                        conversation.discard_draft()
                    on_event("cancelled", {"content": partial + self.cancelled_suffix if partial else ""})
                logger.info("Chat turn %s for conversation %s (%d tool rounds)", status, conversation.id, len(result.rounds))
            except ToolLoopExceeded as e:
                status = "error"
                logger.warning("Conversation %s: %s", conversation.id, e.message)
                on_event("error", {"message": e.message, "kind": "tool_loop_exceeded",
                                   "last_content": e.last_content, "transient": False})
            except (TransportError, StreamRuntimeError) as e:
                status = "error"
                logger.error("Conversation %s: %s", conversation.id, e.message)
                on_event("error", {"message": format_error_for_user(e), "kind": str(e.kind),
                                   "transient": True, "dismiss_after_ms": ERROR_DISMISS_MS})
            except Exception as e:
                status = "error"
                logger.exception("Unexpected failure in chat turn for %s", conversation.id)
                on_event("error", {"message": format_error_for_user(e), "kind": "unknown",
                                   "transient": True, "dismiss_after_ms": ERROR_DISMISS_MS})
            finally:
                if self._loops.get(conversation.id) is orchestrator:
                    del self._loops[conversation.id]
                on_event("done", {"status": status})
                queue.put_nowait(None)

        self._loops[conversation.id] = orchestrator
        task = asyncio.create_task(_run())
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                yield item
        finally:
            if not task.done():
                # Consumer went away mid-turn
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def cancel_chat(self, conversation_id: str) -> int:
        """
        Cancel the conversation's running turn. Streams stop at once; a turn that
        is between rounds (running tools) stops before its next generation.
        """
        cancelled = self.registry.cancel_all_for(conversation_id)
        loop = self._loops.get(conversation_id)
        if loop is not None and loop.cancel():
            cancelled = max(cancelled, 1)
        return cancelled

    # --- Conversations ---

    def create_conversation(self, title: str = "") -> Dict[str, Any]:
        return self.store.create(title=title, system_prompt=self.system_prompt).summary()

    def list_conversations(self) -> List[Dict[str, Any]]:
        return [c.summary() for c in self.store.list()]

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        conv = self.store.get(conversation_id)
        if conv is None:
            return None
        return {**conv.summary(), "messages": conv.to_provider_messages(), "draft": conv.draft}

    def delete_conversation(self, conversation_id: str) -> bool:
        self.registry.cancel_all_for(conversation_id)
        loop = self._loops.get(conversation_id)
        if loop is not None:
            loop.cancel()
        return self.store.delete(conversation_id)

    # --- Tools & models ---

    async def list_tools(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in await self.transport.list_tools()]

    async def handle_tool_rpc(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.tool_server.handle(request)

    def list_models(self) -> List[str]:
        return self.provider.list_models()

    async def shutdown(self) -> None:
        swept = self.registry.cancel_all()
        self.registry.bridge.release_all()
        await self.transport.close()
        await self.provider.aclose()
        logger.info("Generation service shut down (%d stream(s) cancelled)", swept)
