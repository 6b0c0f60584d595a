"""OAuth credentials and token lifecycle for platform integrations."""

from .credentials import (
    CredentialStore,
    InMemoryCredentialStore,
    PlatformCredential,
    SQLAlchemyCredentialStore,
)
from .errors import AuthError, CredentialError, ProviderError, TokenError
from .providers import GoHighLevelOAuthProvider, OAuthProvider, SlackOAuthProvider
from .tokens import RefreshingSession, TokenLifecycleManager

__all__ = [
    "AuthError",
    "CredentialError",
    "CredentialStore",
    "GoHighLevelOAuthProvider",
    "InMemoryCredentialStore",
    "OAuthProvider",
    "PlatformCredential",
    "ProviderError",
    "RefreshingSession",
    "SQLAlchemyCredentialStore",
    "SlackOAuthProvider",
    "TokenError",
    "TokenLifecycleManager",
]
