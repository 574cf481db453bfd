from typing import Any, Dict, List

from chorus_service.core.factory import load
from chorus_service.core.logging import logger
from chorus_service.core.types import ToolDescriptor


class ToolRegistry:
    """Builds the enabled tools from the `tools.registry` config section."""

    def __init__(self, registry_cfg: List[Dict[str, Any]], enabled: List[str]):
        self.tools: Dict[str, Any] = {}
        for tcfg in registry_cfg or []:
            name = tcfg.get("name")
            if name not in enabled:
                continue
            try:
                tool = load(tcfg.get("impl", ""), **(tcfg.get("args") or {}))
            except Exception as e:
                logger.warning("Skipping tool %s: %s", name, e)
                continue
            if hasattr(tool, "_registry_name"):
                tool._registry_name = name
            self.tools[name] = tool

    @classmethod
    def from_tools(cls, *tools: Any) -> "ToolRegistry":
        reg = cls([], [])
        for tool in tools:
            reg.tools[tool.name] = tool
        return reg

    def get(self, name: str) -> Any:
        return self.tools.get(name)

    def all(self) -> Dict[str, Any]:
        return self.tools

    def descriptors(self) -> List[ToolDescriptor]:
        return [t.descriptor for t in self.tools.values()]
