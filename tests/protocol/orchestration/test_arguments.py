import pytest

from chorus_service.core.errors import ToolArgumentError
from chorus_service.core.types import ToolCallRequest, ToolDescriptor
from chorus_service.protocol.orchestration.arguments import decode_arguments, prepare_arguments, validate_arguments

SCHEMA = ToolDescriptor(
    name="convert_temperature",
    input_schema={
        "type": "object",
        "properties": {
            "value": {"type": "number"},
            "from_unit": {"type": "string", "enum": ["celsius", "fahrenheit", "kelvin"]},
            "to_unit": {"type": "string", "enum": ["celsius", "fahrenheit", "kelvin"]},
        },
        "required": ["value", "from_unit", "to_unit"],
    },
)


def req(arguments):
    return ToolCallRequest("c1", "convert_temperature", arguments)


def test_empty_arguments_mean_no_arguments():
    assert decode_arguments(req("")) == {}
    assert decode_arguments(req("   ")) == {}


def test_decodes_json_object():
    assert decode_arguments(req('{"value": 25}')) == {"value": 25}


@pytest.mark.parametrize("raw", ["{bad", "[1, 2]", '"text"', "42"])
def test_rejects_non_object_or_invalid_json(raw):
    with pytest.raises(ToolArgumentError) as exc:
        decode_arguments(req(raw))
    assert exc.value.tool_name == "convert_temperature"


def test_validate_accepts_matching_arguments():
    validate_arguments({"value": 25, "from_unit": "celsius", "to_unit": "fahrenheit"}, SCHEMA)


def test_validate_reports_missing_and_wrong_fields():
    with pytest.raises(ToolArgumentError) as exc:
        validate_arguments({"value": "warm", "from_unit": "celsius"}, SCHEMA)
    message = str(exc.value)
    assert "'to_unit' is a required property" in message
    assert "value:" in message


def test_validate_skips_unknown_descriptor():
    validate_arguments({"anything": True}, None)


def test_prepare_combines_decode_and_validate():
    args = prepare_arguments(req('{"value": 1, "from_unit": "kelvin", "to_unit": "celsius"}'), SCHEMA)
    assert args["from_unit"] == "kelvin"
    with pytest.raises(ToolArgumentError):
        prepare_arguments(req('{"value": 1}'), SCHEMA)


def test_invalid_declared_schema_is_not_enforced():
    descriptor = ToolDescriptor("lookup", input_schema={"type": "obj"})
    validate_arguments({"anything": 1}, descriptor)
    nested = ToolDescriptor("lookup", input_schema={"type": "object", "properties": {"q": {"type": "strng"}}})
    validate_arguments({"q": "x"}, nested)
