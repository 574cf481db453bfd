from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

router = APIRouter(prefix="/conversations", tags=["conversations"])


class CreateConversation(BaseModel):
    title: str = ""


class ConversationSummary(BaseModel):
    id: str
    title: str
    message_count: int
    created_at: float
    updated_at: float


class ConversationDetail(ConversationSummary):
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    draft: Optional[str] = None


@router.post("", response_model=ConversationSummary)
async def create_conversation(request: Request, body: Optional[CreateConversation] = None):
    """Create an empty conversation."""
    return request.app.state.gen_svc.create_conversation((body or CreateConversation()).title)


@router.get("", response_model=List[ConversationSummary])
async def list_conversations(request: Request):
    return request.app.state.gen_svc.list_conversations()


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: str, request: Request):
    conv = request.app.state.gen_svc.get_conversation(conversation_id)
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(conversation_id: str, request: Request):
    """Delete a conversation; its running streams are cancelled first."""
    if not request.app.state.gen_svc.delete_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
