"""
Error taxonomy and helpers shared by the streaming core, the tool protocol and
the HTTP surface.

Only stream-start failures (TransportError), mid-stream failures
(StreamRuntimeError) and runaway tool loops (ToolLoopExceeded) propagate to
callers. ToolArgumentError and ToolExecutionError are folded into the
conversation as tool results by the orchestrator.
"""
from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(StrEnum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    PROVIDER = "provider"
    SERVER = "server"
    STORAGE = "storage"
    UNKNOWN = "unknown"


def is_retryable(kind: ErrorKind, status_code: Optional[int] = None) -> bool:
    if kind == ErrorKind.NETWORK:
        return True
    if kind in (ErrorKind.AUTHENTICATION, ErrorKind.AUTHORIZATION):
        return False
    if status_code is not None and (500 <= status_code < 600 or status_code == 429):
        return True
    return False


class ChorusError(Exception):
    """Base error carrying a classification used for retries and user messages."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.status_code = status_code
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind, self.status_code)


class TransportError(ChorusError):
    """A stream could not be started, or a provider/tool transport call failed."""

    kind = ErrorKind.NETWORK


class StreamRuntimeError(ChorusError):
    """A stream failed after it started producing output."""

    kind = ErrorKind.PROVIDER

    def __init__(self, message: str, session_id: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.session_id = session_id


class ToolArgumentError(ChorusError):
    """Tool-call arguments could not be decoded or do not match the input schema."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name


class ToolExecutionError(ChorusError):
    """The tool transport reported a failure or an unknown tool."""

    kind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        code: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.code = code


class ToolLoopExceeded(ChorusError):
    """The model kept requesting tools past the configured round limit."""

    kind = ErrorKind.PROVIDER

    def __init__(self, max_rounds: int, rounds: Optional[List[Any]] = None, last_content: str = ""):
        super().__init__(f"Tool loop exceeded {max_rounds} rounds")
        self.max_rounds = max_rounds
        self.rounds = list(rounds or [])
        self.last_content = last_content


def classify_error(error: BaseException) -> ChorusError:
    """Map an arbitrary exception (httpx errors in particular) onto a ChorusError."""
    if isinstance(error, ChorusError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 401:
            return ChorusError("Authentication failed: Invalid API key or credentials",
                               ErrorKind.AUTHENTICATION, status, error)
        if status == 403:
            return ChorusError("Authorization failed: You do not have access to this resource",
                               ErrorKind.AUTHORIZATION, status, error)
        if status == 404:
            return ChorusError("Resource not found", ErrorKind.VALIDATION, status, error)
        if status == 422:
            return ChorusError("Invalid request", ErrorKind.VALIDATION, status, error)
        if status == 429:
            return ChorusError("Rate limit exceeded: Too many requests", ErrorKind.PROVIDER, status, error)
        if status >= 500:
            return ChorusError("Server error: The remote service is unavailable", ErrorKind.SERVER, status, error)
        return ChorusError(str(error), ErrorKind.UNKNOWN, status, error)

    if isinstance(error, (httpx.TransportError, ConnectionError, asyncio.TimeoutError)):
        return ChorusError("Network error: Unable to connect to the remote service", ErrorKind.NETWORK, None, error)

    message = str(error) or error.__class__.__name__
    if "API key" in message:
        return ChorusError(message, ErrorKind.AUTHENTICATION, None, error)
    return ChorusError(message, ErrorKind.UNKNOWN, None, error)


def format_error_for_user(error: BaseException) -> str:
    err = classify_error(error)
    if err.kind == ErrorKind.NETWORK:
        return "Network error: Unable to reach the model or tool service. Check your connection and try again."
    if err.kind == ErrorKind.AUTHENTICATION:
        return "Authentication failed: Please check your API key and try again."
    if err.kind == ErrorKind.AUTHORIZATION:
        return "Authorization error: Your API key does not have access to this resource."
    if err.kind == ErrorKind.VALIDATION:
        return f"Invalid request: {err.message}"
    if err.kind == ErrorKind.PROVIDER:
        return f"Provider error: {err.message}"
    if err.kind == ErrorKind.SERVER:
        return "Server error: The remote service is experiencing issues. Please try again later."
    if err.kind == ErrorKind.STORAGE:
        return "Storage error: Unable to save or retrieve data locally."
    return err.message or "An unknown error occurred."


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    factor: float = 2.0,
    on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
) -> T:
    """Run `operation`, retrying retryable failures with exponential backoff."""
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not classify_error(e).retryable:
                raise
            delay = min(initial_delay * (factor ** attempt), max_delay)
            logger.warning("Attempt %d failed (%s); retrying in %.2fs", attempt + 1, e, delay)
            if on_retry:
                on_retry(attempt, delay, e)
            await asyncio.sleep(delay)
            attempt += 1
