"""Outbound adapter contract shared by every deployment platform.

An adapter is built fresh for each inbound event and is bound to the
addressing of a single thread (Slack channel + thread_ts) or contact
(GoHighLevel contact + conversation).  The message processor only ever talks
to this interface.
"""

from __future__ import annotations

import abc
from enum import Enum


class PlatformType(str, Enum):
    """External chat platforms a bot can be deployed onto."""

    SLACK = "slack"
    GOHIGHLEVEL = "gohighlevel"


class DeploymentPlatform(abc.ABC):
    """Deliver replies for one conversation on one platform."""

    type: PlatformType
    supports_streaming: bool = False

    @abc.abstractmethod
    def send_message(self, content: str) -> None:
        """Deliver ``content`` to the bound thread or contact."""

    def set_status(self, status: str) -> None:
        """Show a transient status such as a typing indicator.

        Platforms without a status surface keep the default no-op.
        Implementations log and swallow their own failures.
        """

    def append_to_message(self, chunk: str) -> None:
        """Append ``chunk`` to the message most recently sent."""

        raise NotImplementedError(f"{self.type.value} does not support streaming")


__all__ = ["DeploymentPlatform", "PlatformType"]
