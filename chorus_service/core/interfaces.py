from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from chorus_service.core.types import ToolDescriptor


class ModelProvider(ABC):
    """Opaque streaming source. Output is pushed as chunk/error/end notifications."""

    @abstractmethod
    async def start_stream(
        self,
        stream_id: str,
        provider: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Begin producing notifications for `stream_id`. Raise if the call cannot be initiated."""
        ...

    @abstractmethod
    async def cancel_stream(self, stream_id: str) -> bool:
        """Ask the upstream to stop. Returns False if the stream is unknown."""
        ...

    @abstractmethod
    def list_models(self) -> List[str]:
        """List available models."""
        ...

    async def aclose(self) -> None:
        return None


class ToolTransport(ABC):
    """Client side of the JSON-RPC tool protocol."""

    @abstractmethod
    async def list_tools(self) -> List[ToolDescriptor]:
        ...

    @abstractmethod
    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Return the tool output, or raise ToolExecutionError / TransportError."""
        ...

    async def close(self) -> None:
        return None


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def schema(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        ...
