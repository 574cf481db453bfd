"""In-memory conversation store (process lifetime only)."""
from typing import Dict, List, Optional

from chorus_service.context.conversation import Conversation


class ConversationStore:
    def __init__(self):
        self.conversations: Dict[str, Conversation] = {}

    def create(self, conversation_id: Optional[str] = None, title: str = "", system_prompt: str = "") -> Conversation:
        conv = Conversation(conversation_id, title=title)
        if system_prompt:
            conv.add_system(system_prompt)
        self.conversations[conv.id] = conv
        return conv

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self.conversations.get(conversation_id)

    def get_or_create(self, conversation_id: Optional[str], system_prompt: str = "") -> Conversation:
        if conversation_id and conversation_id in self.conversations:
            return self.conversations[conversation_id]
        return self.create(conversation_id, system_prompt=system_prompt)

    def list(self) -> List[Conversation]:
        return sorted(self.conversations.values(), key=lambda c: c.updated_at, reverse=True)

    def delete(self, conversation_id: str) -> bool:
        return self.conversations.pop(conversation_id, None) is not None
