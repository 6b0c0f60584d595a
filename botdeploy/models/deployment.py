"""Deployment of a bot onto one external platform account."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .conversation import utcnow


class Deployment(Base):
    """Binds a bot to a platform workspace/location with its routing config.

    ``config`` holds the versioned JSON document parsed by
    :func:`botdeploy.deployments.schemas.parse_deployment_config`.
    """

    __tablename__ = "deployments"
    __table_args__ = (
        Index("ix_deployments_platform_account", "platform", "platform_account_id"),
        Index("ix_deployments_bot_platform", "bot_id", "platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    bot_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    organization_id: Mapped[str | None] = mapped_column(String(length=64), nullable=True)
    platform: Mapped[str] = mapped_column(String(length=32), nullable=False)
    platform_account_id: Mapped[str] = mapped_column(String(length=255), nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSON(), nullable=False, default=dict)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = ["Deployment"]
