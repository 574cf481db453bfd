import pytest

from chorus_service.core.tool_registry import ToolRegistry
from chorus_service.tools.server import EXECUTION_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, ToolServer
from chorus_service.tools.base import BaseTool
from chorus_service.tools.temperature_tool import TemperatureTool


class BrokenSumTool(BaseTool):
    """Adds two numbers, but its body is buggy."""

    async def run(self, a: int, b: int) -> int:
        return a + "b"


@pytest.fixture
def server():
    return ToolServer(ToolRegistry.from_tools(TemperatureTool()), timeout=1.0)


@pytest.mark.asyncio
async def test_list_tools(server):
    resp = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "list_tools"})
    assert resp["id"] == 1
    tools = resp["result"]["tools"]
    assert tools[0]["name"] == "convert_temperature"
    assert set(tools[0]["inputSchema"]["required"]) == {"value", "from_unit", "to_unit"}


@pytest.mark.asyncio
async def test_call_tool(server):
    resp = await server.handle({
        "jsonrpc": "2.0", "id": "a", "method": "call_tool",
        "params": {"name": "convert_temperature",
                   "arguments": {"value": 25, "from_unit": "celsius", "to_unit": "fahrenheit"}},
    })
    assert resp == {"jsonrpc": "2.0", "id": "a", "result": {"output": {"value": 77, "unit": "fahrenheit"}}}


@pytest.mark.asyncio
async def test_unknown_method(server):
    resp = await server.handle({"jsonrpc": "2.0", "id": 2, "method": "delete_everything"})
    assert resp["error"]["code"] == METHOD_NOT_FOUND


@pytest.mark.asyncio
async def test_unknown_tool_and_bad_arguments(server):
    missing = await server.handle({"id": 3, "method": "call_tool", "params": {"name": "nope"}})
    assert missing["error"]["code"] == INVALID_PARAMS
    assert "Tool not found" in missing["error"]["message"]

    bad = await server.handle({"id": 4, "method": "call_tool",
                               "params": {"name": "convert_temperature", "arguments": {"value": 1}}})
    assert bad["error"]["code"] == INVALID_PARAMS


@pytest.mark.asyncio
async def test_tool_fault_is_execution_error(server):
    resp = await server.handle({"id": 5, "method": "call_tool", "params": {
        "name": "convert_temperature", "arguments": {"value": 1, "from_unit": "celsius", "to_unit": "rankine"}}})
    assert resp["error"]["code"] == EXECUTION_ERROR
    assert "rankine" in resp["error"]["message"]


@pytest.mark.asyncio
async def test_invalid_request(server):
    resp = await server.handle(["not", "a", "dict"])
    assert resp["error"]["code"] == INVALID_REQUEST


@pytest.mark.asyncio
async def test_positional_params_are_invalid(server):
    resp = await server.handle({"jsonrpc": "2.0", "id": 6, "method": "call_tool", "params": ["convert_temperature"]})
    assert resp["id"] == 6
    assert resp["error"]["code"] == INVALID_PARAMS


@pytest.mark.asyncio
async def test_type_error_inside_tool_is_execution_error():
    server = ToolServer(ToolRegistry.from_tools(BrokenSumTool()))
    resp = await server.handle({"id": 7, "method": "call_tool",
                                "params": {"name": "BrokenSumTool", "arguments": {"a": 1, "b": 2}}})
    assert resp["error"]["code"] == EXECUTION_ERROR

    mismatch = await server.handle({"id": 8, "method": "call_tool",
                                    "params": {"name": "BrokenSumTool", "arguments": {"a": 1, "c": 2}}})
    assert mismatch["error"]["code"] == INVALID_PARAMS
