"""
JSON-RPC 2.0 dispatcher over a ToolRegistry.

Methods:
    list_tools                     -> {"tools": [{name, description, inputSchema}, ...]}
    call_tool {name, arguments}    -> {"output": <tool result>}

Errors use the standard envelope ``{"jsonrpc", "id", "error": {code, message}}``.
"""
import asyncio
import inspect
from typing import Any, Dict, Optional

from chorus_service.core.errors import ToolExecutionError
from chorus_service.core.logging import logger
from chorus_service.core.tool_registry import ToolRegistry

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
EXECUTION_ERROR = -32000


def rpc_result(req_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def rpc_error(req_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}


class ToolServer:
    def __init__(self, registry: ToolRegistry, timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout

    async def handle(self, request: Any) -> Dict[str, Any]:
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return rpc_error(request.get("id") if isinstance(request, dict) else None, INVALID_REQUEST, "Invalid request")

        req_id = request.get("id")
        method = request["method"]
        params = request.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return rpc_error(req_id, INVALID_PARAMS, "params must be an object")

        if method == "list_tools":
            return rpc_result(req_id, {"tools": [d.to_dict() for d in self.registry.descriptors()]})
        if method == "call_tool":
            return await self._call_tool(req_id, params)
        return rpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _call_tool(self, req_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        arguments = params.get("arguments") or {}
        tool = self.registry.get(name) if isinstance(name, str) else None
        if tool is None:
            return rpc_error(req_id, INVALID_PARAMS, f"Tool not found: {name}")
        if not isinstance(arguments, dict):
            return rpc_error(req_id, INVALID_PARAMS, "Tool arguments must be an object")

        try:
            inspect.signature(tool.run).bind(**arguments)
        except TypeError as e:
            return rpc_error(req_id, INVALID_PARAMS, f"Invalid arguments for {name}: {e}")

        logger.info("Running tool %s args=%s", name, arguments)
        try:
            output = await asyncio.wait_for(tool.run(**arguments), self.timeout)
        except asyncio.TimeoutError:
            return rpc_error(req_id, EXECUTION_ERROR, f"Tool {name} timed out after {self.timeout}s")
        except ToolExecutionError as e:
            return rpc_error(req_id, e.code or EXECUTION_ERROR, e.message)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return rpc_error(req_id, EXECUTION_ERROR, f"Tool {name} failed: {e}")
        return rpc_result(req_id, {"output": output})
