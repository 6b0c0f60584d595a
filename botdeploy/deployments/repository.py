"""Lookup of bot deployments and their routing configuration."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..models import Deployment
from ..models.session import session_scope
from .platform import PlatformType
from .schemas import DeploymentConfig, parse_deployment_config

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class DeploymentRecord:
    """A bot deployed onto one platform account."""

    bot_id: str
    owner_id: str
    platform: PlatformType
    platform_account_id: str
    config: DeploymentConfig
    organization_id: Optional[str] = None
    id: uuid.UUID = dataclasses.field(default_factory=uuid.uuid4)


class DeploymentRepository(Protocol):
    def find_by_account(
        self, platform: PlatformType, platform_account_id: str
    ) -> Optional[DeploymentRecord]:
        """Resolve the deployment that receives webhooks for an account."""
        ...

    def get_for_bot(
        self, bot_id: str, platform: PlatformType, platform_account_id: str
    ) -> Optional[DeploymentRecord]: ...

    def list_for_bot(self, bot_id: str, platform: PlatformType) -> List[DeploymentRecord]: ...


class InMemoryDeploymentRepository:
    def __init__(self, deployments: list[DeploymentRecord] | None = None) -> None:
        self.deployments: list[DeploymentRecord] = list(deployments or [])

    def add(self, deployment: DeploymentRecord) -> DeploymentRecord:
        self.deployments.append(deployment)
        return deployment

    def find_by_account(
        self, platform: PlatformType, platform_account_id: str
    ) -> Optional[DeploymentRecord]:
        for deployment in self.deployments:
            if (
                deployment.platform == platform
                and deployment.platform_account_id == platform_account_id
            ):
                return deployment
        return None

    def get_for_bot(
        self, bot_id: str, platform: PlatformType, platform_account_id: str
    ) -> Optional[DeploymentRecord]:
        for deployment in self.list_for_bot(bot_id, platform):
            if deployment.platform_account_id == platform_account_id:
                return deployment
        return None

    def list_for_bot(self, bot_id: str, platform: PlatformType) -> List[DeploymentRecord]:
        return [
            deployment
            for deployment in self.deployments
            if deployment.bot_id == bot_id and deployment.platform == platform
        ]


def _to_record(row: Deployment) -> Optional[DeploymentRecord]:
    config = parse_deployment_config(row.config)
    if config is None:
        logger.warning("Deployment %s has an unusable config; skipping", row.id)
        return None
    return DeploymentRecord(
        id=row.id,
        bot_id=row.bot_id,
        owner_id=row.owner_id,
        organization_id=row.organization_id,
        platform=PlatformType(row.platform),
        platform_account_id=row.platform_account_id,
        config=config,
    )


class SQLAlchemyDeploymentRepository:
    """Repository backed by the ``deployments`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def add(self, deployment: DeploymentRecord) -> DeploymentRecord:
        with session_scope(self._session_factory) as session:
            session.add(
                Deployment(
                    id=deployment.id,
                    bot_id=deployment.bot_id,
                    owner_id=deployment.owner_id,
                    organization_id=deployment.organization_id,
                    platform=deployment.platform.value,
                    platform_account_id=deployment.platform_account_id,
                    config=deployment.config.model_dump(mode="json"),
                )
            )
        return deployment

    def _select(self, stmt) -> List[DeploymentRecord]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(stmt).scalars().all()
            records = [_to_record(row) for row in rows]
        return [record for record in records if record is not None]

    def find_by_account(
        self, platform: PlatformType, platform_account_id: str
    ) -> Optional[DeploymentRecord]:
        stmt = select(Deployment).where(
            Deployment.platform == platform.value,
            Deployment.platform_account_id == platform_account_id,
        )
        records = self._select(stmt.order_by(Deployment.created_at))
        return records[0] if records else None

    def get_for_bot(
        self, bot_id: str, platform: PlatformType, platform_account_id: str
    ) -> Optional[DeploymentRecord]:
        stmt = select(Deployment).where(
            Deployment.bot_id == bot_id,
            Deployment.platform == platform.value,
            Deployment.platform_account_id == platform_account_id,
        )
        records = self._select(stmt)
        return records[0] if records else None

    def list_for_bot(self, bot_id: str, platform: PlatformType) -> List[DeploymentRecord]:
        stmt = select(Deployment).where(
            Deployment.bot_id == bot_id, Deployment.platform == platform.value
        )
        return self._select(stmt)


__all__ = [
    "DeploymentRecord",
    "DeploymentRepository",
    "InMemoryDeploymentRepository",
    "SQLAlchemyDeploymentRepository",
]
