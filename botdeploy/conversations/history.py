"""Turn stored messages into the history the response pipeline expects."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from .models import ChatMessage, MessageRole
from .schemas import ResponsePart, StoredMessage

logger = logging.getLogger(__name__)


def decode_response_messages(raw: Any) -> list[ChatMessage]:
    """Decode the ``response_messages`` column of an assistant row.

    Accepts a list of parts or its JSON encoding.  Anything that is not a
    list, or parts without a string ``role``, are dropped; an empty result
    tells the caller to fall back to the plain content.
    """

    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.debug("Discarding undecodable response_messages")
            return []
    if not isinstance(raw, list):
        return []

    parts: list[ChatMessage] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            part = ResponsePart.model_validate(item)
        except ValidationError:
            continue
        parts.append(ChatMessage(role=part.role, content=part.content))
    return parts


def normalize_history(rows: Iterable[StoredMessage]) -> list[ChatMessage]:
    """Map stored rows (oldest first) onto chat turns.

    User rows pass through, assistant rows replay their structured parts (or
    their plain content when there are none) and system rows are skipped.
    """

    messages: list[ChatMessage] = []
    for row in rows:
        if row.role == MessageRole.USER.value:
            messages.append(ChatMessage(role="user", content=row.content))
        elif row.role == MessageRole.ASSISTANT.value:
            parts = decode_response_messages(row.response_messages)
            if parts:
                messages.extend(parts)
            else:
                messages.append(ChatMessage(role="assistant", content=row.content))
    return messages


__all__ = ["decode_response_messages", "normalize_history"]
