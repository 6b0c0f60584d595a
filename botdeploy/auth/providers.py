"""OAuth refresh-token exchanges for the supported platforms."""

from __future__ import annotations

import abc
import dataclasses
import datetime as dt
import logging
from typing import Any, Dict, Optional

import requests

from ..core.settings import (
    GoHighLevelSettings,
    SlackSettings,
    get_gohighlevel_settings,
    get_routing_settings,
    get_slack_settings,
)
from .errors import ProviderError, TokenError

logger = logging.getLogger(__name__)

REFRESH_BUFFER = dt.timedelta(minutes=5)


@dataclasses.dataclass
class RefreshedToken:
    """Fields returned by a successful refresh-token exchange."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[dt.datetime] = None
    scope: Optional[str] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)


def needs_refresh(
    expires_at: dt.datetime | None,
    *,
    now: dt.datetime | None = None,
    buffer: dt.timedelta = REFRESH_BUFFER,
) -> bool:
    """Return ``True`` when ``expires_at`` falls inside the refresh buffer."""

    if expires_at is None:
        return False
    current = now or dt.datetime.now(dt.timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=dt.timezone.utc)
    return expires_at - buffer <= current


def _expires_at(payload: dict[str, Any]) -> dt.datetime | None:
    expires_in = payload.get("expires_in")
    if not expires_in:
        return None
    return dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=int(expires_in))


class OAuthProvider(abc.ABC):
    """Exchange a refresh token for a new access token on one platform."""

    name: str = "generic"

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else get_routing_settings().request_timeout

    @property
    @abc.abstractmethod
    def token_endpoint(self) -> str:
        ...

    @abc.abstractmethod
    def _form(self, refresh_token: str) -> dict[str, str]:
        ...

    def _parse(self, payload: dict[str, Any], refresh_token: str) -> RefreshedToken:
        if not payload.get("access_token"):
            raise TokenError(
                f"Failed to refresh token: {payload}", self._error_code()
            )
        return RefreshedToken(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or refresh_token,
            expires_at=_expires_at(payload),
            scope=payload.get("scope"),
        )

    def _error_code(self) -> str:
        return f"{self.name.upper()}_REFRESH_ERROR"

    def refresh_token(self, refresh_token: str) -> RefreshedToken:
        """POST the refresh grant and return the new token fields.

        Raises:
            TokenError: the provider answered with a non-2xx status; the raw
                body is kept in the message.
        """

        response = self.session.post(
            self.token_endpoint,
            data=self._form(refresh_token),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        if not response.ok:
            logger.warning(
                "Token refresh failed for %s: HTTP %s", self.name, response.status_code
            )
            raise TokenError(
                f"Failed to refresh token: {response.text}", self._error_code()
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(
                "Token endpoint returned a non-JSON body", self.name
            ) from exc
        return self._parse(payload, refresh_token)


class GoHighLevelOAuthProvider(OAuthProvider):
    name = "gohighlevel"

    def __init__(self, settings: GoHighLevelSettings | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.settings = settings or get_gohighlevel_settings()

    @property
    def token_endpoint(self) -> str:
        return self.settings.token_endpoint

    def _form(self, refresh_token: str) -> dict[str, str]:
        return {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "user_type": "Location",
        }

    def _parse(self, payload: dict[str, Any], refresh_token: str) -> RefreshedToken:
        token = super()._parse(payload, refresh_token)
        token.extra = {
            key: payload[key]
            for key in ("userType", "companyId", "locationId", "userId")
            if key in payload
        }
        return token


class SlackOAuthProvider(OAuthProvider):
    """Slack tokens only expire when token rotation is enabled for the app."""

    name = "slack"

    def __init__(self, settings: SlackSettings | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.settings = settings or get_slack_settings()

    @property
    def token_endpoint(self) -> str:
        return self.settings.token_endpoint

    def _form(self, refresh_token: str) -> dict[str, str]:
        return {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }

    def _parse(self, payload: dict[str, Any], refresh_token: str) -> RefreshedToken:
        # Slack reports failures as HTTP 200 with ``ok: false``.
        if payload.get("ok") is False:
            raise TokenError(
                f"Failed to refresh token: {payload.get('error', 'unknown_error')}",
                self._error_code(),
            )
        token = super()._parse(payload, refresh_token)
        team = payload.get("team") or {}
        token.extra = {
            "team_id": team.get("id"),
            "team_name": team.get("name"),
            "bot_user_id": payload.get("bot_user_id"),
        }
        return token


__all__ = [
    "GoHighLevelOAuthProvider",
    "OAuthProvider",
    "REFRESH_BUFFER",
    "RefreshedToken",
    "SlackOAuthProvider",
    "needs_refresh",
]
