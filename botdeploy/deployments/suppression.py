"""Checks that silence the bot for a conversation or contact.

The opt-out list lives in the deployment configs and is consulted first
because it costs no I/O.  The kill switch is a contact tag on the platform
and needs an API round trip; when that lookup fails the bot keeps
responding.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from .schemas import DeploymentConfig

logger = logging.getLogger(__name__)

KILL_SWITCH_TAG = "kill_switch"


def is_opted_out(configs: Iterable[DeploymentConfig], *conversation_keys: str) -> bool:
    """Return ``True`` if any key appears in any config's opt-out list."""

    keys = {key for key in conversation_keys if key}
    if not keys:
        return False
    return any(keys.intersection(config.opted_out_conversations) for config in configs)


def _tag_name(tag: Any) -> str | None:
    if isinstance(tag, str):
        return tag
    if isinstance(tag, dict):
        name = tag.get("name")
        return name if isinstance(name, str) else None
    return None


def has_kill_switch_tag(tags: Iterable[Any] | None) -> bool:
    for tag in tags or ():
        name = _tag_name(tag)
        if name is not None and name.lower() == KILL_SWITCH_TAG:
            return True
    return False


def check_kill_switch(fetch_tags: Callable[[], Iterable[Any] | None]) -> bool:
    """Run the platform tag lookup, treating any failure as "no kill switch"."""

    try:
        tags = fetch_tags()
    except Exception as exc:
        logger.warning("Kill switch lookup failed; continuing: %s", exc)
        return False
    return has_kill_switch_tag(tags)


__all__ = [
    "KILL_SWITCH_TAG",
    "check_kill_switch",
    "has_kill_switch_tag",
    "is_opted_out",
]
