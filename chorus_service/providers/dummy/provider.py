import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

from chorus_service.providers.base import Delta, TaskStreamingProvider
from chorus_service.streaming.bridge import NotificationHub


class DummyProvider(TaskStreamingProvider):
    """Echoes the last user message back, word by word."""

    def __init__(self, hub: Optional[NotificationHub] = None, delay_sec: float = 0.05):
        super().__init__(hub)
        self.delay_sec = delay_sec

    async def generate(
        self,
        stream_id: str,
        model: str,
        messages: List[Dict[str, Any]],
        options: Dict[str, Any],
    ) -> AsyncIterator[Delta]:
        prompt = next((m.get("content", "") for m in reversed(messages) if m.get("role") == "user"), "")
        words = f"You said: {prompt}".split(" ")
        for i, word in enumerate(words):
            await asyncio.sleep(self.delay_sec)
            yield word if i == 0 else " " + word

    def list_models(self) -> List[str]:
        return ["dummy-echo"]
