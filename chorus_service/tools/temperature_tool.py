from typing import Any, Dict, Literal

from chorus_service.core.errors import ToolExecutionError
from chorus_service.tools.base import BaseTool

Unit = Literal["celsius", "fahrenheit", "kelvin"]

_ALIASES = {"c": "celsius", "f": "fahrenheit", "k": "kelvin"}


def _to_celsius(value: float, unit: str) -> float:
    if unit == "celsius":
        return value
    if unit == "fahrenheit":
        return (value - 32) * 5 / 9
    return value - 273.15


def _from_celsius(value: float, unit: str) -> float:
    if unit == "celsius":
        return value
    if unit == "fahrenheit":
        return value * 9 / 5 + 32
    return value + 273.15


class TemperatureTool(BaseTool):
    """Convert a temperature between celsius, fahrenheit and kelvin."""

    def __init__(self, precision: int = 2):
        super().__init__()
        self._registry_name = "convert_temperature"
        self.precision = precision

    async def run(self, value: float, from_unit: Unit, to_unit: Unit) -> Dict[str, Any]:
        """
        Args:
            value: The temperature to convert.
            from_unit: Unit of `value`.
            to_unit: Unit to convert to.
        Returns:
            dict: {"value": <converted>, "unit": <to_unit>}
        """
        src = _ALIASES.get(str(from_unit).lower(), str(from_unit).lower())
        dst = _ALIASES.get(str(to_unit).lower(), str(to_unit).lower())
        for unit in (src, dst):
            if unit not in ("celsius", "fahrenheit", "kelvin"):
                raise ToolExecutionError(f"Unknown temperature unit: {unit}", tool_name=self.name)

        converted = round(_from_celsius(_to_celsius(float(value), src), dst), self.precision)
        if converted == int(converted):
            converted = int(converted)
        return {"value": converted, "unit": dst}
