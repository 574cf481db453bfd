from typing import Any, Dict, Optional

from chorus_service.core.tool_registry import ToolRegistry
from chorus_service.tools.server import ToolServer
from chorus_service.tools.transports.jsonrpc import JsonRpcToolTransport


class LocalToolTransport(JsonRpcToolTransport):
    """Talks to an in-process ToolServer; requests still go through the JSON-RPC envelope."""

    def __init__(self, registry: Optional[ToolRegistry] = None, timeout: Optional[float] = None, server: Optional[ToolServer] = None):
        super().__init__()
        if server is None:
            server = ToolServer(registry or ToolRegistry([], []), timeout=timeout)
        self.server = server

    async def _send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.server.handle(request)
