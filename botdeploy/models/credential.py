"""OAuth credentials held for an owner on an external platform."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .conversation import utcnow


class Credential(Base):
    """One active credential per ``(owner_id, provider, platform_account_id)``."""

    __tablename__ = "credentials"
    __table_args__ = (
        Index(
            "ix_credentials_owner_provider_account",
            "owner_id",
            "provider",
            "platform_account_id",
            unique=True,
        ),
        Index("ix_credentials_access_token", "provider", "access_token"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    provider: Mapped[str] = mapped_column(String(length=32), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    platform_account_id: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    access_token: Mapped[str] = mapped_column(Text(), nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scope: Mapped[str | None] = mapped_column(Text(), nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column(JSON(), nullable=False, default=dict)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


__all__ = ["Credential"]
