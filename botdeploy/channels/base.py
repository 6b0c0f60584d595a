"""Template for turning a platform-native event into a processed turn.

:meth:`PlatformEventHandler.handle_event` runs the same sequence for every
platform; subclasses supply the platform-specific pieces (which events are
actionable, how conversations are keyed, which channels are enabled and how
to reply).  Every step returns early on the first reason not to respond.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from ..auth.credentials import PlatformCredential
from ..auth.errors import TokenError
from ..conversations.history import normalize_history
from ..conversations.identity import derive_conversation_id
from ..conversations.models import ChatMessage, MessageRole
from ..conversations.repository import ConversationRepository
from ..core.settings import RoutingSettings, get_routing_settings
from ..deployments.platform import DeploymentPlatform, PlatformType
from ..deployments.processor import APOLOGY, MessageProcessor, ProcessMessageOptions
from ..deployments.repository import DeploymentRepository
from ..deployments.schemas import DeploymentConfig
from ..deployments.suppression import is_opted_out
from ..integrations.gohighlevel import HTTPSession

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class AuthContext:
    """Authenticated access to the platform account the event came from.

    ``session`` serves plain HTTP APIs; SDK-backed clients use ``access_token``
    and call ``refresh`` when the platform rejects it.
    """

    session: HTTPSession
    platform_account_id: str
    credential: PlatformCredential | None = None
    access_token: str = ""
    refresh: Callable[[], str] | None = None

    def renew_access_token(self) -> str:
        """Refresh the bearer token and keep the new value for later clients."""

        if self.refresh is None:
            raise TokenError("No token refresh available for this account", "NO_REFRESH_TOKEN")
        self.access_token = self.refresh()
        return self.access_token


@dataclasses.dataclass
class BotContext:
    bot_id: str
    owner_id: str
    organization_id: str | None = None


class PlatformEventHandler(ABC):
    """Abstract base class encapsulating platform-specific event handling."""

    platform: PlatformType

    def __init__(
        self,
        *,
        deployments: DeploymentRepository,
        conversations: ConversationRepository,
        processor: MessageProcessor,
        settings: RoutingSettings | None = None,
    ) -> None:
        self.deployments = deployments
        self.conversations = conversations
        self.processor = processor
        self.settings = settings or get_routing_settings()

    # ------------------------------------------------------------------
    # Platform hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def is_actionable(self, event: Mapping[str, Any]) -> bool:
        """Return ``False`` for events the bot never answers."""

    @abstractmethod
    def conversation_key(self, event: Mapping[str, Any]) -> tuple[str, ...]:
        """Natural key the conversation id is derived from."""

    @abstractmethod
    def channel_enabled(self, event: Mapping[str, Any], config: DeploymentConfig) -> bool:
        ...

    @abstractmethod
    def build_platform(self, event: Mapping[str, Any], auth: AuthContext) -> DeploymentPlatform:
        """Build an adapter bound to the event's thread or contact."""

    def opt_out_keys(self, event: Mapping[str, Any]) -> tuple[str, ...]:
        return (str(self.conversation_id(event)),)

    def has_kill_switch(self, event: Mapping[str, Any], auth: AuthContext) -> bool:
        return False

    def account_id(self, event: Mapping[str, Any], auth: AuthContext) -> str:
        return auth.platform_account_id

    def access_allowed(self, event: Mapping[str, Any], config: DeploymentConfig) -> bool:
        return True

    def on_accepted(self, event: Mapping[str, Any], auth: AuthContext) -> None:
        """Called once the event passed every gate, before any persistence."""

    def message_text(self, event: Mapping[str, Any]) -> str:
        return str(event.get("text") or "")

    def external_user_id(self, event: Mapping[str, Any]) -> str:
        return str(event.get("user") or "")

    def conversation_metadata(self, event: Mapping[str, Any]) -> dict[str, Any]:
        return {}

    def webhook_payload(self, event: Mapping[str, Any]) -> dict[str, Any] | None:
        return None

    # ------------------------------------------------------------------
    # Template
    # ------------------------------------------------------------------

    def conversation_id(self, event: Mapping[str, Any]) -> uuid.UUID:
        return derive_conversation_id(self.platform.value, *self.conversation_key(event))

    def load_history(self, conversation_id: uuid.UUID) -> list[ChatMessage]:
        rows = self.conversations.recent_messages(
            conversation_id, limit=self.settings.history_limit
        )
        return normalize_history(rows)

    def _should_respond(
        self, event: Mapping[str, Any], auth: AuthContext, bot: BotContext
    ) -> DeploymentConfig | None:
        if not self.is_actionable(event):
            logger.debug("Ignoring non-actionable %s event", self.platform.value)
            return None

        configs = [record.config for record in self.deployments.list_for_bot(bot.bot_id, self.platform)]
        if is_opted_out(configs, *self.opt_out_keys(event)):
            logger.info("Conversation opted out on %s; not responding", self.platform.value)
            return None

        if self.has_kill_switch(event, auth):
            logger.info("Contact has kill_switch tag on %s; not responding", self.platform.value)
            return None

        account = self.account_id(event, auth)
        deployment = self.deployments.get_for_bot(bot.bot_id, self.platform, account)
        if deployment is None:
            logger.debug("No %s deployment for bot %s on %s", self.platform.value, bot.bot_id, account)
            return None

        if not self.channel_enabled(event, deployment.config):
            logger.debug("Channel disabled for %s event on %s", self.platform.value, account)
            return None

        if not self.access_allowed(event, deployment.config):
            logger.debug("Access code missing for %s event on %s", self.platform.value, account)
            return None
        return deployment.config

    def handle_event(self, event: Mapping[str, Any], auth: AuthContext, bot: BotContext) -> None:
        """Process one inbound event end to end; never raises."""

        try:
            config = self._should_respond(event, auth, bot)
        except Exception:
            logger.exception("Failed to evaluate %s event for bot %s", self.platform.value, bot.bot_id)
            return
        if config is None:
            return

        try:
            self.on_accepted(event, auth)
            conversation_id = self.conversation_id(event)
            self.conversations.upsert_conversation(
                conversation_id,
                bot_id=bot.bot_id,
                external_user_id=self.external_user_id(event),
                source=self.platform.value,
                metadata=self.conversation_metadata(event),
            )
            messages = self.load_history(conversation_id)
            messages.append(ChatMessage(role=MessageRole.USER.value, content=self.message_text(event)))
            adapter = self.build_platform(event, auth)
            self.processor.process(
                ProcessMessageOptions(
                    bot_id=bot.bot_id,
                    user_id=bot.owner_id,
                    organization_id=bot.organization_id,
                    source=self.platform.value,
                    deployment_type=self.platform,
                    messages=messages,
                    platform=adapter,
                    conversation_id=conversation_id,
                    webhook_payload=self.webhook_payload(event),
                )
            )
        except Exception:
            logger.exception(
                "Error processing %s event for bot %s", self.platform.value, bot.bot_id
            )
            self._apologize(event, auth)

    def _apologize(self, event: Mapping[str, Any], auth: AuthContext) -> None:
        try:
            adapter = self.build_platform(event, auth)
        except Exception:
            logger.exception("Could not build %s adapter for apology", self.platform.value)
            return
        try:
            adapter.send_message(APOLOGY)
        except Exception:
            logger.exception("Could not deliver apology on %s", self.platform.value)
        finally:
            adapter.set_status("")


__all__ = ["AuthContext", "BotContext", "PlatformEventHandler"]
