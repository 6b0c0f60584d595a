"""Slack Web API client and request signature verification."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from collections.abc import Callable
from typing import Any

from slack_sdk.errors import SlackApiError
from slack_sdk.web import WebClient

from ..auth.errors import ProviderError
from ..core.settings import get_routing_settings, get_slack_settings

logger = logging.getLogger(__name__)

TOKEN_ERRORS = frozenset({"token_expired", "invalid_auth"})


def verify_slack_signature(
    signing_secret: str,
    timestamp: str | None,
    body: bytes,
    signature: str | None,
    *,
    max_age_seconds: int = 300,
    now: float | None = None,
) -> bool:
    """Check ``X-Slack-Signature`` against ``v0:{timestamp}:{body}``."""

    if not signing_secret or not timestamp or not signature:
        return False
    try:
        request_time = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - request_time) > max_age_seconds:
        logger.warning("Slack request timestamp outside the replay window")
        return False

    basestring = b"v0:" + timestamp.encode() + b":" + body
    expected = "v0=" + hmac.new(
        signing_secret.encode(), basestring, hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def _slack_error(exc: SlackApiError) -> str:
    response = exc.response
    if response is None:
        return "unknown_error"
    return str(response.get("error") or "unknown_error")


class SlackClient:
    """The Slack Web API methods the bot needs, over :class:`slack_sdk.WebClient`.

    A call rejected with ``token_expired`` or ``invalid_auth`` triggers one
    ``refresh`` of the bot token and one replay; any other ``ok: false``
    answer, or a second rejection, is raised as :class:`ProviderError`.
    """

    def __init__(
        self,
        token: str,
        *,
        refresh: Callable[[], str] | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        web_client_factory: Callable[..., WebClient] = WebClient,
    ) -> None:
        self.api_base = (api_base or get_slack_settings().api_base).rstrip("/") + "/"
        self.timeout = timeout if timeout is not None else get_routing_settings().request_timeout
        self._refresh = refresh
        self._web_client_factory = web_client_factory
        self.web_client = self._connect(token)

    def _connect(self, token: str) -> WebClient:
        return self._web_client_factory(
            token=token, base_url=self.api_base, timeout=int(self.timeout)
        )

    def _invoke(self, method: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        response = getattr(self.web_client, method)(**kwargs)
        return dict(response.data)

    def call(self, method: str, **kwargs: Any) -> dict[str, Any]:
        """Invoke a ``WebClient`` method such as ``chat_postMessage``."""

        try:
            return self._invoke(method, kwargs)
        except SlackApiError as exc:
            error = _slack_error(exc)
            if error not in TOKEN_ERRORS or self._refresh is None:
                raise ProviderError(f"Slack {method} failed: {error}", "slack", error) from exc

        logger.info("Slack %s rejected the bot token (%s); refreshing", method, error)
        self.web_client = self._connect(self._refresh())
        try:
            return self._invoke(method, kwargs)
        except SlackApiError as exc:
            error = _slack_error(exc)
            logger.error("Slack %s still failing after token refresh: %s", method, error)
            raise ProviderError(f"Slack {method} failed: {error}", "slack", error) from exc

    def post_message(
        self,
        channel: str,
        text: str,
        *,
        thread_ts: str | None = None,
        markdown_block: bool = True,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        if markdown_block:
            kwargs["blocks"] = [
                {"type": "section", "text": {"type": "mrkdwn", "text": text}}
            ]
        return self.call("chat_postMessage", **kwargs)

    def set_thread_status(self, channel_id: str, thread_ts: str, status: str) -> dict[str, Any]:
        return self.call(
            "assistant_threads_setStatus",
            channel_id=channel_id,
            thread_ts=thread_ts,
            status=status,
        )


__all__ = ["SlackClient", "TOKEN_ERRORS", "verify_slack_signature"]
