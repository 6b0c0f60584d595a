"""Token lifecycle: proactive refresh and one-shot refresh on rejection.

Platform API calls go through :class:`RefreshingSession`.  When a call comes
back ``401 Unauthorized`` the session asks the :class:`TokenLifecycleManager`
to refresh the credential that owns the stale access token, swaps the
``Authorization`` header and replays the request exactly once.  A second 401
is raised as :class:`requests.HTTPError`.

Clients that do not speak plain HTTP status codes (the Slack Web API answers
``ok: false``) call :meth:`RefreshingSession.refresh` themselves.

Concurrent refreshes of the same credential are not coordinated; the store
keeps whichever write lands last.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Mapping

import requests

from .credentials import CredentialStore, PlatformCredential
from .errors import CredentialError, ProviderError, TokenError
from .providers import OAuthProvider, needs_refresh

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """Refresh and persist platform credentials."""

    def __init__(
        self, store: CredentialStore, providers: Mapping[str, OAuthProvider]
    ) -> None:
        self.store = store
        self._providers = dict(providers)

    def provider(self, name: str) -> OAuthProvider:
        try:
            return self._providers[name]
        except KeyError as exc:
            raise ProviderError(f"Unknown provider: {name}", name, "UNKNOWN_PROVIDER") from exc

    def _refresh(self, credential: PlatformCredential) -> PlatformCredential:
        if not credential.refresh_token:
            raise TokenError(
                f"Credential for {credential.provider} has no refresh token",
                "NO_REFRESH_TOKEN",
            )
        refreshed = self.provider(credential.provider).refresh_token(
            credential.refresh_token
        )
        updated = dataclasses.replace(
            credential,
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or credential.refresh_token,
            expires_at=refreshed.expires_at,
            scope=refreshed.scope or credential.scope,
            extra={**credential.extra, **refreshed.extra},
        )
        stored = self.store.update(updated)
        logger.info(
            "Refreshed %s credential for owner %s", credential.provider, credential.owner_id
        )
        return stored

    def refresh_by_access_token(self, provider: str, access_token: str) -> PlatformCredential:
        """Refresh the credential currently holding ``access_token``."""

        credential = self.store.get_by_access_token(provider, access_token)
        if credential is None:
            raise CredentialError(
                f"No {provider} credential found for access token", "CREDENTIAL_NOT_FOUND"
            )
        return self._refresh(credential)

    def get_valid_credential(
        self, owner_id: str, provider: str, platform_account_id: str | None = None
    ) -> PlatformCredential:
        """Return the owner's credential, refreshing it when close to expiry."""

        credential = self.store.get_by_owner(owner_id, provider, platform_account_id)
        if credential is None:
            raise CredentialError(
                f"No {provider} credential for owner {owner_id}", "CREDENTIAL_NOT_FOUND"
            )
        if credential.refresh_token and needs_refresh(credential.expires_at):
            return self._refresh(credential)
        return credential

    def session_for(
        self, credential: PlatformCredential, *, session: requests.Session | None = None
    ) -> "RefreshingSession":
        return RefreshingSession(
            self, credential.provider, credential.access_token, session=session
        )


class RefreshingSession:
    """Bearer-authenticated HTTP session with a single refresh-and-replay."""

    def __init__(
        self,
        manager: TokenLifecycleManager,
        provider: str,
        access_token: str,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.manager = manager
        self.provider = provider
        self.access_token = access_token
        self.session = session or requests.Session()

    def _send(self, method: str, url: str, headers: dict[str, str], **kwargs: Any) -> requests.Response:
        headers["Authorization"] = f"Bearer {self.access_token}"
        return self.session.request(method, url, headers=headers, **kwargs)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        response = self._send(method, url, headers, **kwargs)
        if response.status_code != 401:
            return response

        logger.info("Received 401 from %s %s; refreshing %s token", method, url, self.provider)
        self.refresh()

        response = self._send(method, url, headers, **kwargs)
        if response.status_code == 401:
            logger.error("Request to %s still unauthorized after token refresh", url)
            response.raise_for_status()
        return response

    def refresh(self) -> str:
        """Refresh the credential behind the current token and return the new one."""

        credential = self.manager.refresh_by_access_token(self.provider, self.access_token)
        self.access_token = credential.access_token
        return self.access_token

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)


__all__ = ["RefreshingSession", "TokenLifecycleManager"]
