"""Exceptions raised while managing platform credentials."""

from __future__ import annotations


class AuthError(Exception):
    """Base class for credential and token failures."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class TokenError(AuthError):
    """A token could not be refreshed or was rejected by the provider."""


class CredentialError(AuthError):
    """No usable credential exists for the requested owner or token."""


class ProviderError(AuthError):
    """The provider is unknown or answered with an unexpected payload."""

    def __init__(self, message: str, provider: str, code: str | None = None) -> None:
        super().__init__(message, code)
        self.provider = provider


__all__ = ["AuthError", "CredentialError", "ProviderError", "TokenError"]
