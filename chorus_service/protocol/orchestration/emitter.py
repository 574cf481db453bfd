import datetime
import json
from typing import Any, Dict


class NdjsonEmitter:
    """Serialises chat/stream events as NDJSON lines: {type, conversation_id, data, ts}."""

    def __init__(self, conversation_id: str = ""):
        self.conversation_id = conversation_id

    def event(self, type_: str, data: Dict[str, Any] = None) -> Dict[str, Any]:
        return {
            "type": type_,
            "conversation_id": self.conversation_id,
            "data": data or {},
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }

    def emit(self, type_: str, data: Dict[str, Any] = None) -> bytes:
        return (json.dumps(self.event(type_, data), default=str) + "\n").encode("utf-8")
