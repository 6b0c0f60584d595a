"""Domain models shared by the platform handlers and the message processor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConversationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class ChatMessage:
    """Platform-agnostic chat turn handed to the response pipeline.

    ``content`` is normally a string; replayed assistant turns may carry the
    structured content of the stored response part verbatim.
    """

    role: str
    content: Any

    def as_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}
