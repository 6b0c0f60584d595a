"""Deterministic conversation ids derived from platform natural keys.

Each platform owns a fixed UUID namespace and the natural key parts are
joined with ``:`` to form the name of a version 5 UUID.  The same Slack
thread or GoHighLevel contact therefore always maps onto the same
conversation row, across processes and restarts.
"""

from __future__ import annotations

import uuid

SLACK_NAMESPACE = uuid.UUID("124e4567-e89b-12d3-a456-426614184000")
GOHIGHLEVEL_NAMESPACE = uuid.UUID("124e4567-e89b-12d3-a456-426614184001")

_NAMESPACES = {
    "slack": SLACK_NAMESPACE,
    "gohighlevel": GOHIGHLEVEL_NAMESPACE,
}


def derive_conversation_id(platform: str, *natural_key_parts: str) -> uuid.UUID:
    """Return the UUIDv5 of ``natural_key_parts`` in the platform's namespace.

    Raises:
        ValueError: the platform is unknown, no parts were given or a part is
            empty.
    """

    namespace = _NAMESPACES.get(str(getattr(platform, "value", platform)))
    if namespace is None:
        raise ValueError(f"No conversation namespace for platform {platform!r}")
    if not natural_key_parts or any(not part for part in natural_key_parts):
        raise ValueError("Conversation key parts must be non-empty")
    return uuid.uuid5(namespace, ":".join(natural_key_parts))


def slack_thread_id(channel: str, thread_ts: str) -> uuid.UUID:
    return derive_conversation_id("slack", channel, thread_ts)


def gohighlevel_conversation_id(contact_id: str, location_id: str) -> uuid.UUID:
    return derive_conversation_id("gohighlevel", contact_id, location_id)


__all__ = [
    "GOHIGHLEVEL_NAMESPACE",
    "SLACK_NAMESPACE",
    "derive_conversation_id",
    "gohighlevel_conversation_id",
    "slack_thread_id",
]
