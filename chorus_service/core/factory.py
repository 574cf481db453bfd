from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Optional, cast
import inspect

from chorus_service.core.config import get_limit, load_settings
from chorus_service.core.interfaces import ModelProvider, ToolTransport

if TYPE_CHECKING:
    from chorus_service.core.tool_registry import ToolRegistry
    from chorus_service.protocol.service.generation_service import GenerationService
    from chorus_service.streaming.bridge import NotificationHub


def load(dotted: str, **kwargs: Any) -> Any:
    """Import a dotted path and instantiate it if it is a class.
    Kwargs not in the constructor signature are dropped (unless it takes **kwargs)."""
    module, attr = dotted.rsplit(".", 1)
    obj = getattr(import_module(module), attr)

    if isinstance(obj, type):
        params = list(inspect.signature(obj.__init__).parameters.values())
        if any(p.kind == p.VAR_KEYWORD for p in params):
            return obj(**kwargs)
        allowed = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"}
        return obj(**{k: v for k, v in kwargs.items() if k in allowed})

    return obj


class ServiceFactory:
    """
    Wires the service from settings. The notification hub is shared: providers
    publish to it, the stream registry's bridge listens on it.
    """

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        self.config = settings if settings is not None else load_settings()
        self._hub: Optional["NotificationHub"] = None
        self._provider: Optional[ModelProvider] = None
        self._tools: Optional["ToolRegistry"] = None
        self._transport: Optional[ToolTransport] = None

    def get_hub(self) -> "NotificationHub":
        if not self._hub:
            from chorus_service.streaming.bridge import NotificationHub

            self._hub = NotificationHub()
        return self._hub

    def get_provider(self) -> ModelProvider:
        if not self._provider:
            model_cfg = self.config.get("providers", {}).get("model", {})
            args = dict(model_cfg.get("args", {}) or {})
            args.setdefault("hub", self.get_hub())
            self._provider = cast(ModelProvider, load(model_cfg.get("impl"), **args))
        return self._provider

    def get_tool_registry(self) -> "ToolRegistry":
        if not self._tools:
            from chorus_service.core.tool_registry import ToolRegistry

            tools_cfg = self.config.get("tools", {}) or {}
            self._tools = ToolRegistry(tools_cfg.get("registry", []) or [], tools_cfg.get("enabled", []) or [])
        return self._tools

    def get_transport(self) -> ToolTransport:
        if not self._transport:
            transport_cfg = (self.config.get("tools", {}) or {}).get("transport", {}) or {}
            impl = transport_cfg.get("impl", "chorus_service.tools.transports.local.LocalToolTransport")
            args = dict(transport_cfg.get("args", {}) or {})
            args.setdefault("registry", self.get_tool_registry())
            args.setdefault("servers", self.config.get("mcp_servers", {}) or {})
            args.setdefault("timeout", get_limit(self.config, "tool_timeout_sec", 10))
            self._transport = cast(ToolTransport, load(impl, **args))
        return self._transport

    def get_generation_service(self) -> "GenerationService":
        from chorus_service.protocol.service.generation_service import GenerationService
        from chorus_service.streaming.bridge import EventBridge
        from chorus_service.streaming.registry import StreamRegistry

        registry = StreamRegistry(
            self.get_provider(),
            EventBridge(self.get_hub()),
            start_timeout=get_limit(self.config, "start_timeout_sec", 15),
        )
        chat_cfg = self.config.get("chat", {}) or {}
        model_cfg = self.config.get("providers", {}).get("model", {}) or {}
        return GenerationService(
            registry=registry,
            tools=self.get_tool_registry(),
            transport=self.get_transport(),
            max_tool_rounds=get_limit(self.config, "max_tool_rounds", 5),
            tool_timeout=get_limit(self.config, "tool_timeout_sec", 10),
            system_prompt=chat_cfg.get("system_prompt", ""),
            cancelled_suffix=chat_cfg.get("cancelled_suffix", " [cancelled]"),
            default_provider=model_cfg.get("provider", "default"),
            default_model=model_cfg.get("model", "default"),
        )
