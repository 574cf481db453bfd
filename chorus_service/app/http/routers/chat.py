from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from chorus_service.core.logging import logger

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    prompt: str = Field(..., description="The user's message.")
    conversation_id: Optional[str] = Field(None, description="Existing conversation; a new one is created if omitted.")
    model: Optional[str] = None
    provider: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


@router.post("/stream")
async def chat_stream(request: Request, body: ChatRequest):
    logger.info("/chat/stream called: conversation_id=%s model=%s", body.conversation_id, body.model)
    svc = request.app.state.gen_svc

    async def event_generator():
        agen = svc.chat(body.prompt, body.conversation_id, body.model, body.provider, body.options)
        try:
            async for line in agen:
                if await request.is_disconnected():
                    logger.info("Client disconnected: conversation_id=%s", body.conversation_id)
                    break
                yield line
        finally:
            await agen.aclose()

    return StreamingResponse(event_generator(), media_type="application/x-ndjson")


@router.post("/{conversation_id}/cancel")
async def cancel_chat(conversation_id: str, request: Request):
    svc = request.app.state.gen_svc
    cancelled = await svc.cancel_chat(conversation_id)
    return {"conversation_id": conversation_id, "cancelled": cancelled}
