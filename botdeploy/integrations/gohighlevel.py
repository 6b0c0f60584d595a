"""GoHighLevel (LeadConnector) API client and webhook verification."""

from __future__ import annotations

import base64
import binascii
import dataclasses
import logging
from typing import Any, Dict, List, Literal, Optional, Protocol, get_args

import requests
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from ..core.settings import GoHighLevelSettings, get_gohighlevel_settings, get_routing_settings

logger = logging.getLogger(__name__)

GoHighLevelMessageType = Literal[
    "SMS", "Email", "WhatsApp", "IG", "FB", "Custom", "Live_Chat", "CALL"
]
MESSAGE_TYPES = frozenset(get_args(GoHighLevelMessageType))


class HTTPSession(Protocol):
    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response: ...


def verify_gohighlevel_signature(payload: bytes, signature: str | None, public_key_pem: str) -> bool:
    """Verify the base64 RSA-SHA256 ``x-wh-signature`` of a webhook body."""

    if not signature:
        return False
    try:
        public_key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
        public_key.verify(  # type: ignore[union-attr,call-arg]
            base64.b64decode(signature, validate=True),
            payload,
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except (InvalidSignature, binascii.Error, ValueError, TypeError) as exc:
        logger.warning("GoHighLevel webhook signature rejected: %s", type(exc).__name__)
        return False
    return True


@dataclasses.dataclass
class GoHighLevelMessage:
    """Outbound message for ``POST /conversations/messages``."""

    type: str
    contact_id: str
    message: str
    conversation_id: Optional[str] = None
    location_id: Optional[str] = None
    subject: Optional[str] = None
    html: Optional[str] = None
    attachments: List[str] = dataclasses.field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "contactId": self.contact_id,
            "message": self.message,
        }
        optional = {
            "conversationId": self.conversation_id,
            "locationId": self.location_id,
            "subject": self.subject,
            "html": self.html,
            "attachments": self.attachments or None,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload


class GoHighLevelClient:
    def __init__(
        self,
        session: HTTPSession,
        *,
        settings: GoHighLevelSettings | None = None,
        timeout: float | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_gohighlevel_settings()
        self.timeout = timeout if timeout is not None else get_routing_settings().request_timeout

    def _url(self, path: str) -> str:
        return f"{self.settings.api_endpoint.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        headers = {
            "Version": self.settings.api_version,
            "Accept": "application/json",
        }
        response = self.session.request(
            method, self._url(path), headers=headers, timeout=self.timeout, **kwargs
        )
        response.raise_for_status()
        return response.json() if response.content else {}

    def get_contact(self, contact_id: str) -> Dict[str, Any]:
        data = self._request("GET", f"/contacts/{contact_id}")
        return data.get("contact") or {}

    def get_contact_tags(self, contact_id: str) -> List[Any]:
        return list(self.get_contact(contact_id).get("tags") or [])

    def send_message(self, message: GoHighLevelMessage) -> Dict[str, Any]:
        return self._request("POST", "/conversations/messages", json=message.to_payload())


__all__ = [
    "GoHighLevelClient",
    "GoHighLevelMessage",
    "GoHighLevelMessageType",
    "MESSAGE_TYPES",
    "verify_gohighlevel_signature",
]
