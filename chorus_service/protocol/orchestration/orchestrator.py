"""
Bounded multi-round tool-calling loop.

    generate -> [tool calls?] -> run each call in order -> append results -> generate -> ...

The loop stops when a generation finishes without tool calls, when a
generation is cancelled, or when the round limit is hit (ToolLoopExceeded).
Argument and execution failures of individual tools never escape: they are
written into the conversation as error results for the model to read.
"""
import asyncio
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from chorus_service.context.conversation import Conversation
from chorus_service.core.errors import (
    ChorusError,
    StreamRuntimeError,
    ToolArgumentError,
    ToolExecutionError,
    ToolLoopExceeded,
    TransportError,
)
from chorus_service.core.interfaces import ToolTransport
from chorus_service.core.logging import logger
from chorus_service.core.types import (
    StreamOutcome,
    StreamSnapshot,
    StreamState,
    ToolCallRequest,
    ToolCallRound,
    ToolDescriptor,
    ToolInvocation,
)
from chorus_service.protocol.orchestration.arguments import prepare_arguments
from chorus_service.streaming.registry import StreamRegistry
from chorus_service.streaming.session import Observer

EventCallback = Callable[[str, Dict[str, Any]], None]


@dataclass
class OrchestrationResult:
    content: str
    status: str = "completed"
    rounds: List[ToolCallRound] = field(default_factory=list)
    session_ids: List[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"


class ToolCallOrchestrator:
    def __init__(
        self,
        registry: StreamRegistry,
        transport: ToolTransport,
        max_rounds: int = 5,
        tool_timeout: Optional[float] = None,
        on_event: Optional[EventCallback] = None,
    ):
        if max_rounds < 0:
            raise ValueError("max_rounds must be >= 0")
        self.registry = registry
        self.transport = transport
        self.max_rounds = max_rounds
        self.tool_timeout = tool_timeout
        self.on_event = on_event
        self._cancel_requested = False

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> bool:
        """
        Stop the loop at the next boundary: after the running tool call, or
        before the next generation starts. Returns False if already requested.
        """
        if self._cancel_requested:
            return False
        self._cancel_requested = True
        return True

    def _emit(self, type_: str, data: Dict[str, Any]) -> None:
        if self.on_event is not None:
            self.on_event(type_, data)

    async def _load_tools(self) -> Dict[str, ToolDescriptor]:
        try:
            tools = await self.transport.list_tools()
        except ChorusError as e:
            logger.warning("Continuing without tools; listing failed: %s", e.message)
            return {}
        except Exception:
            logger.exception("Continuing without tools; listing raised unexpectedly")
            return {}
        return {t.name: t for t in tools}

    async def run(
        self,
        conversation: Conversation,
        provider: str,
        model: str,
        options: Optional[Dict[str, Any]] = None,
        observer: Optional[Observer] = None,
    ) -> OrchestrationResult:
        descriptors = await self._load_tools()
        opts = dict(options or {})
        if descriptors:
            opts.setdefault("tools", [d.to_model_schema() for d in descriptors.values()])

        result = OrchestrationResult(content="")
        rounds = result.rounds
        if self._cancel_requested:
            result.status = "cancelled"
            return result

        outcome = await self._generate(conversation, provider, model, opts, observer, result)
        while outcome.state == StreamState.COMPLETED and outcome.tool_calls:
            if len(rounds) >= self.max_rounds:
                logger.warning(
                    "Conversation %s: model still requesting tools after %d rounds",
                    conversation.id, len(rounds),
                )
                _close_pending(conversation, outcome.tool_calls, f"Tool loop limit of {self.max_rounds} rounds reached")
                raise ToolLoopExceeded(self.max_rounds, rounds=rounds, last_content=outcome.content)

            current = ToolCallRound(index=len(rounds) + 1, requests=list(outcome.tool_calls))
            rounds.append(current)
            logger.info(
                "Conversation %s: tool round %d/%d with %d call(s)",
                conversation.id, current.index, self.max_rounds, len(current.requests),
            )
            self._emit("round_started", {"round": current.index, "calls": [r.name for r in current.requests]})

            for i, request in enumerate(current.requests):
                if self._cancel_requested:
                    _close_pending(conversation, current.requests[i:], "Cancelled before the tool ran")
                    break
                invocation = await self._invoke(request, descriptors)
                current.invocations.append(invocation)
                conversation.add_tool_result(invocation)

            if self._cancel_requested:
                logger.info("Conversation %s: tool loop cancelled after round %d", conversation.id, current.index)
                # The last answer is already in the conversation; nothing is partial
                result.status = "cancelled"
                return result

            outcome = await self._generate(conversation, provider, model, opts, observer, result)

        result.content = outcome.content
        if outcome.state == StreamState.CANCELLED:
            result.status = "cancelled"
        return result

    async def _generate(
        self,
        conversation: Conversation,
        provider: str,
        model: str,
        options: Dict[str, Any],
        observer: Optional[Observer],
        result: OrchestrationResult,
    ) -> StreamOutcome:
        def _observe(snap: StreamSnapshot) -> None:
            conversation.set_draft(snap.content)
            if observer is not None:
                observer(snap)

        session = await self.registry.start_for(
            conversation.id, provider, model, conversation.to_provider_messages(), options, observer=_observe
        )
        result.session_ids.append(session.session_id)
        try:
            outcome = await session.wait()
        except asyncio.CancelledError:
            session.cancel()
            raise

        if outcome.state == StreamState.ERRORED:
            conversation.discard_draft()
            raise StreamRuntimeError(outcome.error or "Stream failed", session_id=outcome.session_id)
        if outcome.state == StreamState.COMPLETED:
            calls = tuple(_with_id(tc) for tc in outcome.tool_calls)
            conversation.add_assistant(outcome.content, calls)
            outcome = replace(outcome, tool_calls=calls)
        return outcome

    async def _invoke(self, request: ToolCallRequest, descriptors: Dict[str, ToolDescriptor]) -> ToolInvocation:
        invocation = ToolInvocation.from_request(request)
        self._emit("tool_started", {"call_id": request.id, "name": request.name, "arguments": request.arguments})
        try:
            descriptor = descriptors.get(request.name)
            if descriptors and descriptor is None:
                raise ToolExecutionError(f"Tool not found: {request.name}", tool_name=request.name)
            invocation.arguments = prepare_arguments(request, descriptor)
            output = await asyncio.wait_for(
                self.transport.call_tool(request.name, invocation.arguments), self.tool_timeout
            )
        except (ToolArgumentError, ToolExecutionError, TransportError) as e:
            invocation.fail(e.message)
        except asyncio.TimeoutError:
            invocation.fail(f"Tool {request.name} timed out after {self.tool_timeout}s")
        except Exception as e:
            logger.exception("Tool %s (%s) raised unexpectedly", request.name, request.id)
            invocation.fail(f"Tool {request.name} failed: {str(e) or e.__class__.__name__}")
        else:
            invocation.resolve(output)

        if invocation.ok:
            logger.info("Tool %s (%s) completed", request.name, request.id)
            self._emit("tool_completed", {"call_id": request.id, "name": request.name, "result": invocation.result})
        else:
            logger.warning("Tool %s (%s) failed: %s", request.name, request.id, invocation.error)
            self._emit("tool_error", {"call_id": request.id, "name": request.name, "error": invocation.error})
        return invocation


def _close_pending(conversation: Conversation, requests, reason: str) -> None:
    """Answer calls that will not run, so every assistant tool call has a result."""
    for request in requests:
        invocation = ToolInvocation.from_request(request)
        invocation.fail(reason)
        conversation.add_tool_result(invocation)


def _with_id(request: ToolCallRequest) -> ToolCallRequest:
    if request.id:
        return request
    return replace(request, id=f"call_{uuid.uuid4().hex[:8]}")
