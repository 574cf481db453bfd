"""
Client half of the JSON-RPC tool protocol, independent of the wire.

Subclasses only implement ``_send(request) -> response``. This class builds the
request envelopes, unwraps the responses and normalises ``list_tools`` output.
"""
import itertools
import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from chorus_service.core.errors import ToolExecutionError, TransportError
from chorus_service.core.interfaces import ToolTransport
from chorus_service.core.types import ToolDescriptor

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601
_SOFT_FAILURES = ("connection not found", "session not found")


def normalize_tool_list(result: Any) -> List[ToolDescriptor]:
    """
    Accept ``{"tools": [...]}``, a bare list, MCP descriptors
    (``{name, description, inputSchema}``) or function schemas
    (``{"type": "function", "function": {...}}``).
    """
    if isinstance(result, dict):
        if result.get("warning"):
            logger.warning("Tool server warning: %s", result["warning"])
        items = result.get("tools") or []
    elif isinstance(result, list):
        items = result
    else:
        logger.warning("Unexpected list_tools result: %r", result)
        return []

    tools: List[ToolDescriptor] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        desc = ToolDescriptor.from_dict(item)
        if desc.name:
            tools.append(desc)
    return tools


def _error_parts(error: Any) -> Tuple[Optional[int], str]:
    """Split an error member into (code, message); servers do not always send an object."""
    if isinstance(error, dict):
        code = error.get("code")
        return (code if isinstance(code, int) else None), str(error.get("message") or "")
    return None, str(error)


class JsonRpcToolTransport(ToolTransport):
    def __init__(self):
        self._ids = itertools.count(1)

    def _request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "method": method, "id": next(self._ids), "params": params}

    @abstractmethod
    async def _send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver one request and return the response envelope. Raise TransportError on wire failure."""
        ...

    async def _exchange(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._send(self._request(method, params))
        if not isinstance(response, dict):
            raise TransportError(f"Malformed {method} response: expected an object, got {type(response).__name__}")
        return response

    async def list_tools(self) -> List[ToolDescriptor]:
        response = await self._exchange("list_tools", {})
        error = response.get("error")
        if error:
            code, message = _error_parts(error)
            if code == METHOD_NOT_FOUND or any(s in message.lower() for s in _SOFT_FAILURES):
                logger.warning("Tool server cannot list tools (%s): %s", code, message)
                return []
            raise TransportError(f"list_tools failed: {message}")
        tools = normalize_tool_list(response.get("result"))
        logger.debug("Tool server offers %d tool(s)", len(tools))
        return tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        response = await self._exchange("call_tool", {"name": name, "arguments": arguments})
        error = response.get("error")
        if error:
            code, message = _error_parts(error)
            raise ToolExecutionError(message or "Tool call failed", tool_name=name, code=code)
        result = response.get("result")
        if isinstance(result, dict) and "output" in result:
            return result["output"]
        return result
