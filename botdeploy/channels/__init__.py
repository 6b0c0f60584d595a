"""Platform event handler registry."""

from __future__ import annotations

from ..deployments.platform import PlatformType
from .base import AuthContext, BotContext, PlatformEventHandler
from .gohighlevel import GoHighLevelEventHandler, GoHighLevelPlatform
from .slack import SlackEventHandler, SlackPlatform


class PlatformRegistry:
    """Event handlers keyed by platform, built once per application."""

    def __init__(self) -> None:
        self._handlers: dict[PlatformType, PlatformEventHandler] = {}

    def register(self, handler: PlatformEventHandler) -> None:
        """Register ``handler`` for its platform, replacing any previous one."""
        self._handlers[handler.platform] = handler

    def get(self, platform: PlatformType | str) -> PlatformEventHandler:
        """Retrieve the handler for ``platform`` or raise ``KeyError``."""
        key = PlatformType(platform)
        if key not in self._handlers:
            raise KeyError(f"Platform '{key.value}' is not configured")
        return self._handlers[key]

    def __contains__(self, platform: object) -> bool:
        return platform in self._handlers


__all__ = [
    "AuthContext",
    "BotContext",
    "GoHighLevelEventHandler",
    "GoHighLevelPlatform",
    "PlatformEventHandler",
    "PlatformRegistry",
    "SlackEventHandler",
    "SlackPlatform",
]
