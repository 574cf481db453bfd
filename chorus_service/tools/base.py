"""
Base class for in-process tools served over the JSON-RPC tool protocol.

A tool subclasses BaseTool and implements ``async run(...)`` with explicit,
type-annotated keyword arguments and a Google-style docstring; its input
schema is derived from that signature:

    class EchoTool(BaseTool):
        \"\"\"Echo the given text back.\"\"\"

        async def run(self, text: str, upper: bool = False) -> dict:
            \"\"\"
            Args:
                text: Text to echo.
                upper: Upper-case the result.
            \"\"\"
            return {"text": text.upper() if upper else text}

The class docstring becomes the tool description.
"""
import inspect
import re
from abc import abstractmethod
from typing import Any, Dict, List, Literal, Optional, get_args, get_origin, get_type_hints

from chorus_service.core.interfaces import Tool
from chorus_service.core.types import ToolDescriptor

_JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean", dict: "object", list: "array"}


def _param_schema(annotation: Any) -> Dict[str, Any]:
    if get_origin(annotation) is Literal:
        choices = list(get_args(annotation))
        return {"type": _JSON_TYPES.get(type(choices[0]), "string"), "enum": choices}
    origin = get_origin(annotation)
    if origin is not None and type(None) in get_args(annotation):
        # Optional[X]
        inner = [a for a in get_args(annotation) if a is not type(None)]
        return _param_schema(inner[0]) if inner else {"type": "string"}
    return {"type": _JSON_TYPES.get(origin or annotation, "string")}


class BaseTool(Tool):
    def __init__(self):
        self._registry_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self._registry_name or self.__class__.__name__

    @property
    def description(self) -> str:
        doc = inspect.cleandoc(self.__class__.__doc__ or "")
        # First paragraph only; Args/Returns belong to the parameters
        return doc.split("\n\n")[0].split("Args:")[0].strip()

    @staticmethod
    def _extract_param_descriptions(docstring: str) -> Dict[str, str]:
        """Map parameter name to description from a Google-style ``Args:`` section."""
        if not docstring:
            return {}
        section = re.search(r"Args?:\s*(.*?)(^\s*(?:Returns?|Raises?):|\Z)", docstring, re.DOTALL | re.MULTILINE)
        if not section:
            return {}
        out: Dict[str, str] = {}
        for line in section.group(1).splitlines():
            match = re.match(r"\s*(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)", line)
            if match:
                out[match.group(1)] = match.group(2).strip()
        return out

    @property
    def input_schema(self) -> Dict[str, Any]:
        sig = inspect.signature(self.run)
        hints = get_type_hints(self.run)
        docs = self._extract_param_descriptions(inspect.cleandoc(self.run.__doc__ or self.__class__.__doc__ or ""))
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for pname, param in sig.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            prop = _param_schema(hints.get(pname, str))
            if docs.get(pname):
                prop["description"] = docs[pname]
            if param.default is inspect.Parameter.empty:
                required.append(pname)
            else:
                prop["default"] = param.default
            properties[pname] = prop
        return {"type": "object", "properties": properties, "required": required}

    @property
    def schema(self) -> Dict[str, Any]:
        """Model-facing function schema."""
        return self.descriptor.to_model_schema()

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(name=self.name, description=self.description, input_schema=self.input_schema)

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        raise NotImplementedError()
