"""Runtime configuration for platform integrations and message routing.

Settings are read from the environment once and cached. Tests that tweak
environment variables should call :func:`reset_settings_cache` afterwards.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

GOHIGHLEVEL_PUBLIC_KEY = """-----BEGIN PUBLIC KEY-----
MIICIjANBgkqhkiG9w0BAQEFAAOCAg8AMIICCgKCAgEAokvo/r9tVgcfZ5DysOSC
Frm602qYV0MaAiNnX9O8KxMbiyRKWeL9JpCpVpt4XHIcBOK4u3cLSqJGOLaPuXw6
dO0t6Q/ZVdAV5Phz+ZtzPL16iCGeK9po6D6JHBpbi989mmzMryUnQJezlYJ3DVfB
csedpinheNnyYeFXolrJvcsjDtfAeRx5ByHQmTnSdFUzuAnC9/GepgLT9SM4nCpv
uxmZMxrJt5Rw+VUaQ9B8JSvbMPpez4peKaJPZHBbU3OdeCVx5klVXXZQGNHOs8gF
3kvoV5rTnXV0IknLBXlcKKAQLZcY/Q9rG6Ifi9c+5vqlvHPCUJFT5XUGG5RKgOKU
J062fRtN+rLYZUV+BjafxQauvC8wSWeYja63VSUruvmNj8xkx2zE/Juc+yjLjTXp
IocmaiFeAO6fUtNjDeFVkhf5LNb59vECyrHD2SQIrhgXpO4Q3dVNA5rw576PwTzN
h/AMfHKIjE4xQA1SZuYJmNnmVZLIZBlQAF9Ntd03rfadZ+yDiOXCCs9FkHibELhC
HULgCsnuDJHcrGNd5/Ddm5hxGQ0ASitgHeMZ0kcIOwKDOzOU53lDza6/Y09T7sYJ
PQe7z0cvj7aE4B+Ax1ZoZGPzpJlZtGXCsu9aTEGEnKzmsFqwcSsnw3JB31IGKAyk
T1hhTiaCeIY/OwwwNUY2yvcCAwEAAQ==
-----END PUBLIC KEY-----"""


@dataclasses.dataclass(frozen=True)
class GoHighLevelSettings:
    """OAuth client and API coordinates for GoHighLevel (LeadConnector)."""

    client_id: str
    client_secret: str
    api_endpoint: str = "https://services.leadconnectorhq.com"
    api_version: str = "2021-04-15"
    public_key: str = GOHIGHLEVEL_PUBLIC_KEY

    @property
    def token_endpoint(self) -> str:
        return f"{self.api_endpoint.rstrip('/')}/oauth/token"


@dataclasses.dataclass(frozen=True)
class SlackSettings:
    """OAuth client, signing secret and Web API base for Slack."""

    client_id: str
    client_secret: str
    signing_secret: str
    api_base: str = "https://slack.com/api"

    @property
    def token_endpoint(self) -> str:
        return f"{self.api_base.rstrip('/')}/oauth.v2.access"


@dataclasses.dataclass(frozen=True)
class RoutingSettings:
    """Knobs shared by every platform handler and the webhook boundary."""

    history_limit: int = 10
    request_timeout: float = 30.0
    dedup_ttl_seconds: int = 300
    webhook_max_age_seconds: int = 300
    webhook_rate_limit: str = "120/minute"


@lru_cache(maxsize=1)
def get_gohighlevel_settings() -> GoHighLevelSettings:
    return GoHighLevelSettings(
        client_id=os.getenv("GOHIGHLEVEL_CLIENT_ID", ""),
        client_secret=os.getenv("GOHIGHLEVEL_CLIENT_SECRET", ""),
        api_endpoint=os.getenv(
            "GOHIGHLEVEL_API_ENDPOINT", "https://services.leadconnectorhq.com"
        ),
        api_version=os.getenv("GOHIGHLEVEL_API_VERSION", "2021-04-15"),
        public_key=os.getenv("GOHIGHLEVEL_PUBLIC_KEY") or GOHIGHLEVEL_PUBLIC_KEY,
    )


@lru_cache(maxsize=1)
def get_slack_settings() -> SlackSettings:
    return SlackSettings(
        client_id=os.getenv("SLACK_CLIENT_ID", ""),
        client_secret=os.getenv("SLACK_CLIENT_SECRET", ""),
        signing_secret=os.getenv("SLACK_SIGNING_SECRET", ""),
        api_base=os.getenv("SLACK_API_BASE", "https://slack.com/api"),
    )


@lru_cache(maxsize=1)
def get_routing_settings() -> RoutingSettings:
    """Load routing settings with development-friendly defaults."""

    return RoutingSettings(
        history_limit=int(os.getenv("HISTORY_LIMIT", "10")),
        request_timeout=float(os.getenv("PLATFORM_REQUEST_TIMEOUT", "30")),
        dedup_ttl_seconds=int(os.getenv("WEBHOOK_DEDUP_TTL", "300")),
        webhook_max_age_seconds=int(os.getenv("WEBHOOK_MAX_AGE", "300")),
        webhook_rate_limit=os.getenv("WEBHOOK_RATE_LIMIT", "120/minute"),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_gohighlevel_settings.cache_clear()
    get_slack_settings.cache_clear()
    get_routing_settings.cache_clear()


__all__ = [
    "GoHighLevelSettings",
    "RoutingSettings",
    "SlackSettings",
    "get_gohighlevel_settings",
    "get_routing_settings",
    "get_slack_settings",
    "reset_settings_cache",
]
