"""Conversation identity, history and persistence."""

from .history import decode_response_messages, normalize_history
from .identity import derive_conversation_id, gohighlevel_conversation_id, slack_thread_id
from .models import ChatMessage, ConversationStatus, MessageRole
from .repository import (
    ConversationRepository,
    InMemoryConversationRepository,
    SQLAlchemyConversationRepository,
)

__all__ = [
    "ChatMessage",
    "ConversationRepository",
    "ConversationStatus",
    "InMemoryConversationRepository",
    "MessageRole",
    "SQLAlchemyConversationRepository",
    "decode_response_messages",
    "derive_conversation_id",
    "gohighlevel_conversation_id",
    "normalize_history",
    "slack_thread_id",
]
