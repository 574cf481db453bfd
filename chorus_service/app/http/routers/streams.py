from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from chorus_service.core.errors import TransportError, format_error_for_user
from chorus_service.core.logging import logger

router = APIRouter(prefix="/streams", tags=["streams"])


class StartStreamRequest(BaseModel):
    provider: Optional[str] = Field(None, description="Provider name; the configured default if omitted.")
    model: Optional[str] = Field(None, description="Model name; the configured default if omitted.")
    messages: List[Dict[str, Any]] = Field(..., description="Chat messages in {role, content} form.")
    options: Dict[str, Any] = Field(default_factory=dict)
    conversation_id: Optional[str] = Field(None, description="Owner; an earlier stream of the same owner is cancelled.")


class StartStreamResponse(BaseModel):
    stream_id: str


class CancelResponse(BaseModel):
    stream_id: str
    cancelled: bool


@router.post("", response_model=StartStreamResponse)
async def start_stream(request: Request, body: StartStreamRequest):
    svc = request.app.state.gen_svc
    try:
        stream_id = await svc.start_stream(body.provider, body.model, body.messages, body.options, body.conversation_id)
    except TransportError as e:
        logger.error("POST /streams failed: %s", e.message)
        raise HTTPException(status_code=502, detail=format_error_for_user(e))
    return {"stream_id": stream_id}


@router.delete("/{stream_id}", response_model=CancelResponse)
async def cancel_stream(stream_id: str, request: Request):
    svc = request.app.state.gen_svc
    return {"stream_id": stream_id, "cancelled": await svc.cancel_stream(stream_id)}


@router.get("/{stream_id}/events")
async def stream_events(stream_id: str, request: Request):
    svc = request.app.state.gen_svc
    if svc.registry.get(stream_id) is None:
        raise HTTPException(status_code=404, detail="Stream not found or already finished")
    return StreamingResponse(svc.stream_events(stream_id), media_type="application/x-ndjson")
