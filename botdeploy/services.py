"""Wiring of repositories, token management and platform handlers.

:class:`Services` is built once per application and stored on
``app.state.services``; the webhook routes and their background tasks read
everything they need from it.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Callable

import requests
from slack_sdk.web import WebClient
from sqlalchemy.orm import Session, sessionmaker

from .auth.credentials import (
    CredentialStore,
    InMemoryCredentialStore,
    SQLAlchemyCredentialStore,
)
from .auth.errors import AuthError
from .auth.providers import GoHighLevelOAuthProvider, SlackOAuthProvider
from .auth.tokens import TokenLifecycleManager
from .channels import (
    AuthContext,
    BotContext,
    GoHighLevelEventHandler,
    PlatformRegistry,
    SlackEventHandler,
)
from .conversations.repository import (
    ConversationRepository,
    InMemoryConversationRepository,
    SQLAlchemyConversationRepository,
)
from .core.dedup import EventDeduplicator
from .core.settings import (
    GoHighLevelSettings,
    RoutingSettings,
    SlackSettings,
    get_gohighlevel_settings,
    get_routing_settings,
    get_slack_settings,
)
from .deployments.platform import PlatformType
from .deployments.processor import MessageProcessor
from .deployments.repository import (
    DeploymentRecord,
    DeploymentRepository,
    InMemoryDeploymentRepository,
    SQLAlchemyDeploymentRepository,
)
from .deployments.responders import Responder, build_default_responder
from .models.session import create_schema, get_sessionmaker

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Services:
    registry: PlatformRegistry
    deployments: DeploymentRepository
    conversations: ConversationRepository
    tokens: TokenLifecycleManager
    dedup: EventDeduplicator
    slack: SlackSettings
    gohighlevel: GoHighLevelSettings
    routing: RoutingSettings
    http_session: requests.Session | None = None

    def dispatch(self, platform: PlatformType, event: dict, deployment: DeploymentRecord) -> None:
        """Run the platform handler for ``event``; used as a background task."""

        try:
            credential = self.tokens.get_valid_credential(
                deployment.owner_id, platform.value, deployment.platform_account_id
            )
        except (AuthError, requests.RequestException) as exc:
            logger.error(
                "No usable %s credential for account %s: %s",
                platform.value,
                deployment.platform_account_id,
                exc,
            )
            return
        session = self.tokens.session_for(credential, session=self.http_session)
        auth = AuthContext(
            session=session,
            platform_account_id=deployment.platform_account_id,
            credential=credential,
            access_token=credential.access_token,
            refresh=session.refresh,
        )
        bot = BotContext(
            bot_id=deployment.bot_id,
            owner_id=deployment.owner_id,
            organization_id=deployment.organization_id,
        )
        self.registry.get(platform).handle_event(event, auth, bot)


def build_services(
    *,
    deployments: DeploymentRepository,
    conversations: ConversationRepository,
    credentials: CredentialStore,
    responder: Responder | None = None,
    http_session: requests.Session | None = None,
    slack: SlackSettings | None = None,
    gohighlevel: GoHighLevelSettings | None = None,
    routing: RoutingSettings | None = None,
    slack_web_client: Callable[..., WebClient] | None = None,
) -> Services:
    slack = slack or get_slack_settings()
    gohighlevel = gohighlevel or get_gohighlevel_settings()
    routing = routing or get_routing_settings()

    tokens = TokenLifecycleManager(
        credentials,
        {
            PlatformType.SLACK.value: SlackOAuthProvider(
                slack, session=http_session, timeout=routing.request_timeout
            ),
            PlatformType.GOHIGHLEVEL.value: GoHighLevelOAuthProvider(
                gohighlevel, session=http_session, timeout=routing.request_timeout
            ),
        },
    )
    processor = MessageProcessor(responder or build_default_responder(), conversations)
    handler_kwargs = dict(
        deployments=deployments,
        conversations=conversations,
        processor=processor,
        settings=routing,
    )
    registry = PlatformRegistry()
    registry.register(
        SlackEventHandler(web_client_factory=slack_web_client or WebClient, **handler_kwargs)
    )
    registry.register(GoHighLevelEventHandler(**handler_kwargs))
    return Services(
        registry=registry,
        deployments=deployments,
        conversations=conversations,
        tokens=tokens,
        dedup=EventDeduplicator(routing.dedup_ttl_seconds),
        slack=slack,
        gohighlevel=gohighlevel,
        routing=routing,
        http_session=http_session,
    )


def build_sqlalchemy_services(
    session_factory: sessionmaker[Session], **kwargs: object
) -> Services:
    create_schema(session_factory)
    return build_services(
        deployments=SQLAlchemyDeploymentRepository(session_factory),
        conversations=SQLAlchemyConversationRepository(session_factory),
        credentials=SQLAlchemyCredentialStore(session_factory),
        **kwargs,  # type: ignore[arg-type]
    )


def build_services_from_env() -> Services:
    """Use the database when ``DATABASE_URL`` is set, in-memory stores otherwise."""

    if os.getenv("DATABASE_URL"):
        return build_sqlalchemy_services(get_sessionmaker())
    logger.warning("DATABASE_URL not configured; using in-memory stores")
    return build_services(
        deployments=InMemoryDeploymentRepository(),
        conversations=InMemoryConversationRepository(),
        credentials=InMemoryCredentialStore(),
    )


__all__ = [
    "Services",
    "build_services",
    "build_services_from_env",
    "build_sqlalchemy_services",
]
