"""Persistence of OAuth credentials for external platforms.

The :class:`CredentialStore` protocol is what the token lifecycle manager
depends on.  :class:`SQLAlchemyCredentialStore` backs it with the
``credentials`` table and :class:`InMemoryCredentialStore` keeps everything in
a dictionary for tests and local runs.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import uuid
from threading import Lock
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..models import Credential
from ..models.session import session_scope


@dataclasses.dataclass
class PlatformCredential:
    """OAuth material the service holds on behalf of an owner."""

    provider: str
    owner_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[dt.datetime] = None
    scope: Optional[str] = None
    platform_account_id: Optional[str] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)
    id: uuid.UUID = dataclasses.field(default_factory=uuid.uuid4)

    @property
    def key(self) -> tuple[str, str, Optional[str]]:
        return (self.owner_id, self.provider, self.platform_account_id)


class CredentialStore(Protocol):
    """Lookup and last-writer-wins update of platform credentials."""

    def get_by_owner(
        self, owner_id: str, provider: str, platform_account_id: str | None = None
    ) -> PlatformCredential | None:
        ...

    def get_by_access_token(
        self, provider: str, access_token: str
    ) -> PlatformCredential | None:
        ...

    def update(self, credential: PlatformCredential) -> PlatformCredential:
        ...


class InMemoryCredentialStore:
    """Dictionary-backed credential store."""

    def __init__(self, credentials: list[PlatformCredential] | None = None) -> None:
        self._lock = Lock()
        self._items: dict[tuple[str, str, Optional[str]], PlatformCredential] = {}
        for credential in credentials or []:
            self.update(credential)

    def get_by_owner(
        self, owner_id: str, provider: str, platform_account_id: str | None = None
    ) -> PlatformCredential | None:
        with self._lock:
            if platform_account_id is not None:
                found = self._items.get((owner_id, provider, platform_account_id))
                return dataclasses.replace(found) if found else None
            for (owner, prov, _), credential in self._items.items():
                if owner == owner_id and prov == provider:
                    return dataclasses.replace(credential)
        return None

    def get_by_access_token(
        self, provider: str, access_token: str
    ) -> PlatformCredential | None:
        with self._lock:
            for credential in self._items.values():
                if credential.provider == provider and credential.access_token == access_token:
                    return dataclasses.replace(credential)
        return None

    def update(self, credential: PlatformCredential) -> PlatformCredential:
        with self._lock:
            existing = self._items.get(credential.key)
            stored = dataclasses.replace(credential)
            if existing is not None:
                stored.id = existing.id
            self._items[credential.key] = stored
            return dataclasses.replace(stored)


def _to_record(row: Credential) -> PlatformCredential:
    return PlatformCredential(
        id=row.id,
        provider=row.provider,
        owner_id=row.owner_id,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        expires_at=_aware(row.expires_at),
        scope=row.scope,
        platform_account_id=row.platform_account_id,
        extra=dict(row.extra or {}),
    )


def _aware(value: dt.datetime | None) -> dt.datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class SQLAlchemyCredentialStore:
    """Credential store backed by the ``credentials`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get_by_owner(
        self, owner_id: str, provider: str, platform_account_id: str | None = None
    ) -> PlatformCredential | None:
        stmt = select(Credential).where(
            Credential.owner_id == owner_id, Credential.provider == provider
        )
        if platform_account_id is not None:
            stmt = stmt.where(Credential.platform_account_id == platform_account_id)
        with session_scope(self._session_factory) as session:
            row = session.execute(stmt.limit(1)).scalar_one_or_none()
            return _to_record(row) if row else None

    def get_by_access_token(
        self, provider: str, access_token: str
    ) -> PlatformCredential | None:
        stmt = select(Credential).where(
            Credential.provider == provider, Credential.access_token == access_token
        )
        with session_scope(self._session_factory) as session:
            row = session.execute(stmt.limit(1)).scalar_one_or_none()
            return _to_record(row) if row else None

    def _apply(self, row: Credential, credential: PlatformCredential) -> None:
        row.access_token = credential.access_token
        row.refresh_token = credential.refresh_token
        row.expires_at = credential.expires_at
        row.scope = credential.scope
        row.extra = dict(credential.extra)

    def update(self, credential: PlatformCredential) -> PlatformCredential:
        stmt = select(Credential).where(
            Credential.owner_id == credential.owner_id,
            Credential.provider == credential.provider,
            Credential.platform_account_id == credential.platform_account_id,
        )
        try:
            with session_scope(self._session_factory) as session:
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    row = Credential(
                        id=credential.id,
                        provider=credential.provider,
                        owner_id=credential.owner_id,
                        platform_account_id=credential.platform_account_id,
                    )
                    session.add(row)
                self._apply(row, credential)
                session.flush()
                return _to_record(row)
        except IntegrityError:
            # A concurrent writer inserted the row first; overwrite it.
            with session_scope(self._session_factory) as session:
                row = session.execute(stmt).scalar_one()
                self._apply(row, credential)
                session.flush()
                return _to_record(row)


__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "PlatformCredential",
    "SQLAlchemyCredentialStore",
]
