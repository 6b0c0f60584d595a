"""Deployment configuration, suppression checks and the shared processor."""

from .platform import DeploymentPlatform, PlatformType
from .processor import APOLOGY, MessageProcessor, ProcessMessageOptions
from .repository import (
    DeploymentRecord,
    DeploymentRepository,
    InMemoryDeploymentRepository,
    SQLAlchemyDeploymentRepository,
)
from .schemas import ChannelConfig, DeploymentConfig, GlobalSettings, parse_deployment_config
from .suppression import check_kill_switch, has_kill_switch_tag, is_opted_out

__all__ = [
    "APOLOGY",
    "ChannelConfig",
    "DeploymentConfig",
    "DeploymentPlatform",
    "DeploymentRecord",
    "DeploymentRepository",
    "GlobalSettings",
    "InMemoryDeploymentRepository",
    "MessageProcessor",
    "PlatformType",
    "ProcessMessageOptions",
    "SQLAlchemyDeploymentRepository",
    "check_kill_switch",
    "has_kill_switch_tag",
    "is_opted_out",
    "parse_deployment_config",
]
