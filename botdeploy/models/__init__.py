"""SQLAlchemy declarative base and routing models.

This package hosts the SQLAlchemy models used by the webhook service.  It
exposes a single declarative ``Base`` class that other modules can import when
creating tables.  Individual models live in dedicated modules within this
package.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export the models so callers can import them via
# ``from botdeploy.models import Conversation`` instead of touching private modules.
from .conversation import Conversation, Message, utcnow
from .credential import Credential
from .deployment import Deployment


__all__ = [
    "Base",
    "Conversation",
    "Credential",
    "Deployment",
    "Message",
    "utcnow",
]
