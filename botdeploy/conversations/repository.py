"""Persistence of conversations and their message history."""

from __future__ import annotations

import uuid
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..models import Conversation, Message, utcnow
from ..models.session import session_scope
from .models import ConversationStatus
from .schemas import ConversationRecord, StoredMessage


class ConversationRepository(Protocol):
    """Abstraction for persisting conversations and messages."""

    def upsert_conversation(
        self,
        conversation_id: uuid.UUID,
        *,
        bot_id: str,
        external_user_id: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord: ...

    def get_conversation(self, conversation_id: uuid.UUID) -> Optional[ConversationRecord]: ...

    def recent_messages(
        self, conversation_id: uuid.UUID, limit: int = 10
    ) -> List[StoredMessage]: ...

    def add_message(
        self,
        conversation_id: uuid.UUID,
        role: str,
        content: str,
        response_messages: Any = None,
    ) -> StoredMessage: ...


class InMemoryConversationRepository:
    """Process-local repository used by tests and local runs."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.conversations: dict[uuid.UUID, ConversationRecord] = {}
        self.messages: dict[uuid.UUID, list[StoredMessage]] = {}

    def upsert_conversation(
        self,
        conversation_id: uuid.UUID,
        *,
        bot_id: str,
        external_user_id: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord:
        now = utcnow()
        with self._lock:
            existing = self.conversations.get(conversation_id)
            if existing is not None:
                record = existing.model_copy(
                    update={"status": ConversationStatus.ACTIVE.value, "updated_at": now}
                )
            else:
                record = ConversationRecord(
                    id=conversation_id,
                    bot_id=bot_id,
                    external_user_id=external_user_id,
                    source=source,
                    status=ConversationStatus.ACTIVE.value,
                    metadata=dict(metadata or {}),
                    created_at=now,
                    updated_at=now,
                )
            self.conversations[conversation_id] = record
            return record

    def get_conversation(self, conversation_id: uuid.UUID) -> Optional[ConversationRecord]:
        return self.conversations.get(conversation_id)

    def recent_messages(
        self, conversation_id: uuid.UUID, limit: int = 10
    ) -> List[StoredMessage]:
        with self._lock:
            rows = sorted(
                self.messages.get(conversation_id, []), key=lambda row: row.timestamp
            )
        return rows[-limit:] if limit > 0 else []

    def add_message(
        self,
        conversation_id: uuid.UUID,
        role: str,
        content: str,
        response_messages: Any = None,
    ) -> StoredMessage:
        message = StoredMessage(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            response_messages=response_messages,
            timestamp=utcnow(),
        )
        with self._lock:
            if conversation_id not in self.conversations:
                raise KeyError(f"Unknown conversation {conversation_id}")
            self.messages.setdefault(conversation_id, []).append(message)
        return message


def _conversation_record(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        bot_id=row.bot_id,
        external_user_id=row.external_user_id,
        source=row.source,
        status=row.status,
        metadata=dict(row.metadata_ or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _message_record(row: Message) -> StoredMessage:
    return StoredMessage(
        id=row.id,
        conversation_id=row.conversation_id,
        role=row.role,
        content=row.content,
        response_messages=row.response_messages,
        timestamp=row.timestamp,
    )


class SQLAlchemyConversationRepository:
    """Repository backed by the ``conversations`` and ``messages`` tables."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def upsert_conversation(
        self,
        conversation_id: uuid.UUID,
        *,
        bot_id: str,
        external_user_id: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(Conversation, conversation_id)
                if row is None:
                    row = Conversation(
                        id=conversation_id,
                        bot_id=bot_id,
                        external_user_id=external_user_id,
                        source=source,
                        status=ConversationStatus.ACTIVE.value,
                        metadata_=dict(metadata or {}),
                    )
                    session.add(row)
                else:
                    row.status = ConversationStatus.ACTIVE.value
                    row.updated_at = utcnow()
                session.flush()
                return _conversation_record(row)
        except IntegrityError:
            # Two deliveries for a new thread raced on the insert.
            with session_scope(self._session_factory) as session:
                row = session.get(Conversation, conversation_id)
                if row is None:
                    raise
                row.status = ConversationStatus.ACTIVE.value
                row.updated_at = utcnow()
                session.flush()
                return _conversation_record(row)

    def get_conversation(self, conversation_id: uuid.UUID) -> Optional[ConversationRecord]:
        with session_scope(self._session_factory) as session:
            row = session.get(Conversation, conversation_id)
            return _conversation_record(row) if row else None

    def recent_messages(
        self, conversation_id: uuid.UUID, limit: int = 10
    ) -> List[StoredMessage]:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc())
            .limit(limit)
        )
        with session_scope(self._session_factory) as session:
            rows = session.execute(stmt).scalars().all()
            return [_message_record(row) for row in reversed(rows)]

    def add_message(
        self,
        conversation_id: uuid.UUID,
        role: str,
        content: str,
        response_messages: Any = None,
    ) -> StoredMessage:
        with session_scope(self._session_factory) as session:
            row = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                response_messages=response_messages,
                timestamp=utcnow(),
            )
            session.add(row)
            conversation = session.get(Conversation, conversation_id)
            if conversation is not None:
                conversation.updated_at = utcnow()
            session.flush()
            return _message_record(row)


__all__ = [
    "ConversationRepository",
    "InMemoryConversationRepository",
    "SQLAlchemyConversationRepository",
]
