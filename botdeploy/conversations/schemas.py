"""Pydantic schemas for stored conversations and messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ResponsePart(BaseModel):
    """One structured message produced by the response pipeline.

    Unknown keys (tool calls, ids) are preserved so the part can be replayed
    unchanged.
    """

    model_config = ConfigDict(extra="allow")

    role: str
    content: Any = None


class ConversationRecord(BaseModel):
    id: UUID
    bot_id: str
    external_user_id: str
    source: str
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class StoredMessage(BaseModel):
    id: UUID
    conversation_id: UUID
    role: str
    content: str = ""
    response_messages: Any = None
    timestamp: datetime
