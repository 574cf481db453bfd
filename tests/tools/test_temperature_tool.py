import pytest

from chorus_service.core.errors import ToolExecutionError
from chorus_service.tools.temperature_tool import TemperatureTool


@pytest.mark.asyncio
@pytest.mark.parametrize("value,src,dst,expected", [
    (25, "celsius", "fahrenheit", 77),
    (212, "fahrenheit", "celsius", 100),
    (0, "kelvin", "celsius", -273.15),
    (98.6, "F", "C", 37),
    (10, "celsius", "celsius", 10),
])
async def test_conversions(value, src, dst, expected):
    out = await TemperatureTool().run(value=value, from_unit=src, to_unit=dst)
    assert out["value"] == pytest.approx(expected)


@pytest.mark.asyncio
async def test_unknown_unit_raises():
    with pytest.raises(ToolExecutionError):
        await TemperatureTool().run(value=1, from_unit="celsius", to_unit="rankine")


def test_schema_from_signature_and_docstring():
    tool = TemperatureTool()
    assert tool.name == "convert_temperature"
    assert tool.description.startswith("Convert a temperature")
    props = tool.input_schema["properties"]
    assert props["value"]["type"] == "number"
    assert props["from_unit"]["enum"] == ["celsius", "fahrenheit", "kelvin"]
    assert props["to_unit"]["description"] == "Unit to convert to."
    assert tool.schema["function"]["name"] == "convert_temperature"
