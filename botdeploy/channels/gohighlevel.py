"""GoHighLevel inbound conversation messages (SMS, Email, WhatsApp, ...)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..deployments.platform import DeploymentPlatform, PlatformType
from ..deployments.schemas import DeploymentConfig
from ..deployments.suppression import check_kill_switch
from ..integrations.gohighlevel import GoHighLevelClient, GoHighLevelMessage
from .base import AuthContext, PlatformEventHandler

logger = logging.getLogger(__name__)


class GoHighLevelPlatform(DeploymentPlatform):
    """Replies to one contact through the channel the message arrived on."""

    type = PlatformType.GOHIGHLEVEL
    supports_streaming = False

    def __init__(
        self,
        client: GoHighLevelClient,
        *,
        contact_id: str,
        conversation_id: str | None,
        location_id: str,
        message_type: str,
    ) -> None:
        self.client = client
        self.contact_id = contact_id
        self.conversation_id = conversation_id
        self.location_id = location_id
        self.message_type = message_type

    def send_message(self, content: str) -> None:
        self.client.send_message(
            GoHighLevelMessage(
                type=self.message_type,
                contact_id=self.contact_id,
                message=content,
                conversation_id=self.conversation_id,
                location_id=self.location_id,
            )
        )


def _body(event: Mapping[str, Any]) -> str:
    return str(event.get("messageBody") or event.get("body") or "")


class GoHighLevelEventHandler(PlatformEventHandler):
    platform = PlatformType.GOHIGHLEVEL

    def client(self, auth: AuthContext) -> GoHighLevelClient:
        return GoHighLevelClient(auth.session, timeout=self.settings.request_timeout)

    def is_actionable(self, event: Mapping[str, Any]) -> bool:
        return (
            event.get("direction") == "inbound"
            and bool(event.get("contactId"))
            and bool(event.get("locationId"))
        )

    def conversation_key(self, event: Mapping[str, Any]) -> tuple[str, ...]:
        return (str(event["contactId"]), str(event["locationId"]))

    def opt_out_keys(self, event: Mapping[str, Any]) -> tuple[str, ...]:
        keys = [str(self.conversation_id(event))]
        if event.get("conversationId"):
            keys.append(str(event["conversationId"]))
        return tuple(keys)

    def has_kill_switch(self, event: Mapping[str, Any], auth: AuthContext) -> bool:
        contact_id = str(event["contactId"])
        client = self.client(auth)
        return check_kill_switch(lambda: client.get_contact_tags(contact_id))

    def account_id(self, event: Mapping[str, Any], auth: AuthContext) -> str:
        return str(event["locationId"])

    def channel_enabled(self, event: Mapping[str, Any], config: DeploymentConfig) -> bool:
        message_type = event.get("messageType")
        return any(entry.type == message_type for entry in config.active_channels())

    def access_allowed(self, event: Mapping[str, Any], config: DeploymentConfig) -> bool:
        access_code = (config.global_settings.access_code or "").strip()
        if not access_code:
            return True
        return access_code in _body(event)

    def message_text(self, event: Mapping[str, Any]) -> str:
        return _body(event)

    def external_user_id(self, event: Mapping[str, Any]) -> str:
        return str(event["contactId"])

    def conversation_metadata(self, event: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "locationId": event.get("locationId"),
            "messageType": event.get("messageType"),
            "conversationId": event.get("conversationId"),
        }

    def webhook_payload(self, event: Mapping[str, Any]) -> dict[str, Any] | None:
        return dict(event)

    def build_platform(self, event: Mapping[str, Any], auth: AuthContext) -> DeploymentPlatform:
        return GoHighLevelPlatform(
            self.client(auth),
            contact_id=str(event["contactId"]),
            conversation_id=event.get("conversationId"),
            location_id=str(event["locationId"]),
            message_type=str(event.get("messageType") or "SMS"),
        )


__all__ = ["GoHighLevelEventHandler", "GoHighLevelPlatform"]
