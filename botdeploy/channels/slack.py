"""Slack assistant threads, direct messages and channel mentions."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from slack_sdk.web import WebClient

from ..deployments.platform import DeploymentPlatform, PlatformType
from ..deployments.schemas import DeploymentConfig
from ..integrations.slack import SlackClient
from .base import AuthContext, BotContext, PlatformEventHandler

logger = logging.getLogger(__name__)

THINKING_STATUS = "Is thinking..."
DEFAULT_GREETING = "Hi! How can I help you today?"
_MENTION_RE = re.compile(r"<@[A-Z0-9]+>\s*")


class SlackPlatform(DeploymentPlatform):
    """Replies into one Slack thread."""

    type = PlatformType.SLACK
    supports_streaming = False

    def __init__(self, client: SlackClient, channel: str, thread_ts: str) -> None:
        self.client = client
        self.channel = channel
        self.thread_ts = thread_ts

    def send_message(self, content: str) -> None:
        self.client.post_message(self.channel, content, thread_ts=self.thread_ts)

    def set_status(self, status: str) -> None:
        try:
            self.client.set_thread_status(self.channel, self.thread_ts, status)
        except Exception as exc:
            logger.warning(
                "Could not update thread status for %s/%s: %s", self.channel, self.thread_ts, exc
            )


class SlackEventHandler(PlatformEventHandler):
    platform = PlatformType.SLACK

    def __init__(
        self, *, web_client_factory: Callable[..., WebClient] = WebClient, **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        self.web_client_factory = web_client_factory

    def client(self, auth: AuthContext) -> SlackClient:
        return SlackClient(
            auth.access_token,
            refresh=auth.renew_access_token if auth.refresh is not None else None,
            timeout=self.settings.request_timeout,
            web_client_factory=self.web_client_factory,
        )

    def is_actionable(self, event: Mapping[str, Any]) -> bool:
        event_type = event.get("type")
        if event.get("bot_id"):
            return False
        if event_type == "message":
            return (
                event.get("channel_type") == "im"
                and event.get("subtype") != "assistant_app_thread"
            )
        return event_type == "app_mention"

    def thread_ts(self, event: Mapping[str, Any]) -> str:
        return str(event.get("thread_ts") or event.get("ts") or "")

    def conversation_key(self, event: Mapping[str, Any]) -> tuple[str, ...]:
        return (str(event.get("channel") or ""), self.thread_ts(event))

    def channel_enabled(self, event: Mapping[str, Any], config: DeploymentConfig) -> bool:
        # Direct messages are never channel-gated; mentions need an active entry.
        if event.get("channel_type") == "im":
            return True
        channel = event.get("channel")
        return any(entry.channel_id == channel for entry in config.active_channels())

    def on_accepted(self, event: Mapping[str, Any], auth: AuthContext) -> None:
        self.build_platform(event, auth).set_status(THINKING_STATUS)

    def message_text(self, event: Mapping[str, Any]) -> str:
        text = str(event.get("text") or "")
        if event.get("type") == "app_mention":
            text = _MENTION_RE.sub("", text).strip()
        return text

    def conversation_metadata(self, event: Mapping[str, Any]) -> dict[str, Any]:
        return {"channel": event.get("channel")}

    def build_platform(self, event: Mapping[str, Any], auth: AuthContext) -> DeploymentPlatform:
        return SlackPlatform(self.client(auth), str(event.get("channel")), self.thread_ts(event))

    def handle_event(self, event: Mapping[str, Any], auth: AuthContext, bot: BotContext) -> None:
        if event.get("type") == "assistant_thread_started":
            self.start_thread(event, auth, bot)
            return
        super().handle_event(event, auth, bot)

    def start_thread(self, event: Mapping[str, Any], auth: AuthContext, bot: BotContext) -> None:
        """Greet the user in a freshly opened assistant thread."""

        thread = event.get("assistant_thread") or {}
        channel_id = thread.get("channel_id")
        thread_ts = thread.get("thread_ts")
        if not channel_id or not thread_ts:
            logger.debug("assistant_thread_started without thread addressing")
            return
        try:
            deployment = self.deployments.get_for_bot(
                bot.bot_id, self.platform, auth.platform_account_id
            )
            if deployment is None:
                logger.debug("No Slack deployment for bot %s", bot.bot_id)
                return
            greeting = deployment.config.global_settings.greeting or DEFAULT_GREETING
            self.client(auth).post_message(channel_id, greeting, thread_ts=thread_ts)
        except Exception:
            logger.exception("Failed to greet Slack thread %s/%s", channel_id, thread_ts)


__all__ = ["SlackEventHandler", "SlackPlatform"]
