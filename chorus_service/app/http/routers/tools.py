from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from chorus_service.core.errors import ChorusError, format_error_for_user

router = APIRouter(prefix="/tools", tags=["tools"])


class ToolInfo(BaseModel):
    name: str
    description: str = ""
    inputSchema: Dict[str, Any] = Field(default_factory=dict)


@router.get("", response_model=List[ToolInfo])
async def list_tools(request: Request):
    try:
        return await request.app.state.gen_svc.list_tools()
    except ChorusError as e:
        raise HTTPException(status_code=502, detail=format_error_for_user(e))


@router.post("/rpc")
async def tools_rpc(request: Request):
    """JSON-RPC 2.0 endpoint for list_tools / call_tool, served from the local tool registry."""
    try:
        payload = await request.json()
    except ValueError:
        return {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}}
    return await request.app.state.gen_svc.handle_tool_rpc(payload)
