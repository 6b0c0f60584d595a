"""Versioned deployment configuration documents.

Deployments store their routing configuration as JSON.  Documents written by
the dashboard use camelCase keys (``locationId``, ``globalSettings``,
``optedOutConversations``, ``channelId``); both spellings are accepted on
input.  Slack channel entries carry ``channelId``/``channelName`` and no
``type``; GoHighLevel entries carry the message ``type``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1


class ChannelConfig(BaseModel):
    """One channel (Slack channel or GoHighLevel message type) of a deployment."""

    model_config = ConfigDict(populate_by_name=True)

    type: str | None = None
    active: bool = False
    channel_id: str | None = Field(
        default=None, validation_alias=AliasChoices("channel_id", "channelId")
    )
    channel_name: str | None = Field(
        default=None, validation_alias=AliasChoices("channel_name", "channelName")
    )
    settings: dict[str, Any] = Field(default_factory=dict)


class GlobalSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    access_code: str | None = Field(
        default=None, validation_alias=AliasChoices("access_code", "accessCode")
    )
    greeting: str | None = None
    default_response_time: str | None = Field(
        default=None,
        validation_alias=AliasChoices("default_response_time", "defaultResponseTime"),
    )


class DeploymentConfig(BaseModel):
    """Routing configuration of one bot on one platform account."""

    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1] = CONFIG_VERSION
    platform_account_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "platform_account_id", "locationId", "teamId", "team_id"
        ),
    )
    channels: list[ChannelConfig] = Field(default_factory=list)
    global_settings: GlobalSettings = Field(
        default_factory=GlobalSettings,
        validation_alias=AliasChoices("global_settings", "globalSettings"),
    )
    opted_out_conversations: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("opted_out_conversations", "optedOutConversations"),
    )

    def active_channels(self) -> list[ChannelConfig]:
        return [channel for channel in self.channels if channel.active]


def parse_deployment_config(raw: Any) -> DeploymentConfig | None:
    """Decode a stored config document, returning ``None`` when it is unusable."""

    if raw is None:
        return None
    if isinstance(raw, DeploymentConfig):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Deployment config is not valid JSON")
            return None
    try:
        return DeploymentConfig.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Ignoring invalid deployment config: %s", exc.errors()[:3])
        return None


__all__ = [
    "CONFIG_VERSION",
    "ChannelConfig",
    "DeploymentConfig",
    "GlobalSettings",
    "parse_deployment_config",
]
