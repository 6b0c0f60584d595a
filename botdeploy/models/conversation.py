"""Conversation and message models.

Conversations are keyed by a name-based UUID derived from the platform's
natural key (Slack channel + thread, GoHighLevel contact + location), so the
same thread always maps onto the same row.  Messages are append-only.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class Conversation(Base):
    """A thread between one external user and one deployed bot."""

    __tablename__ = "conversations"
    __table_args__ = (Index("ix_conversations_bot_id", "bot_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True)
    bot_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    external_user_id: Mapped[str] = mapped_column(String(length=255), nullable=False)
    source: Mapped[str] = mapped_column(String(length=32), nullable=False)
    status: Mapped[str] = mapped_column(String(length=16), nullable=False, default="ACTIVE")
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON(), nullable=False, default=dict
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    messages: Mapped[List["Message"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Message(Base):
    """A single stored turn of a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(length=16), nullable=False)
    content: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    response_messages: Mapped[Any | None] = mapped_column(JSON(), nullable=True)
    timestamp: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages")


__all__ = ["Conversation", "Message", "utcnow"]
