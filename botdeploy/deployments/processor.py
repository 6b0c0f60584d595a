"""Shared entry point that turns a normalized history into a delivered reply.

Every platform handler funnels into :meth:`MessageProcessor.process`.  The
processor shows a status while the reply is generated, delivers it either
as one message or chunk by chunk on streaming platforms, clears the status
and records the exchange.  Failures end with a plain-language apology to the
end user and are never re-raised.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any, Dict, List, Optional

from ..conversations.models import ChatMessage, MessageRole
from ..conversations.repository import ConversationRepository
from .platform import DeploymentPlatform, PlatformType
from .responders import ChatRequest, ChatResult, Responder

logger = logging.getLogger(__name__)

PROCESSING_STATUS = "Processing..."
APOLOGY = "Sorry, I encountered an error processing your request."


@dataclasses.dataclass
class ProcessMessageOptions:
    bot_id: str
    user_id: str
    organization_id: Optional[str]
    source: str
    deployment_type: PlatformType
    messages: List[ChatMessage]
    platform: DeploymentPlatform
    conversation_id: Optional[uuid.UUID] = None
    model_id: Optional[str] = None
    webhook_payload: Optional[Dict[str, Any]] = None


def _latest_user_text(messages: List[ChatMessage]) -> str | None:
    if messages and messages[-1].role == MessageRole.USER.value:
        content = messages[-1].content
        return content if isinstance(content, str) else str(content)
    return None


class MessageProcessor:
    def __init__(
        self,
        responder: Responder,
        conversations: ConversationRepository | None = None,
    ) -> None:
        self.responder = responder
        self.conversations = conversations

    def _deliver(self, platform: DeploymentPlatform, result: ChatResult) -> str:
        if platform.supports_streaming and result.stream is not None:
            platform.send_message("")
            chunks: list[str] = []
            for chunk in result.stream:
                platform.append_to_message(chunk)
                chunks.append(chunk)
            return "".join(chunks)
        if result.text is not None:
            platform.send_message(result.text)
            return result.text
        raise RuntimeError("No text available in non-streaming mode")

    def _record_user_turn(self, options: ProcessMessageOptions) -> None:
        if self.conversations is None or options.conversation_id is None:
            return
        text = _latest_user_text(options.messages)
        if text is not None:
            self.conversations.add_message(
                options.conversation_id, MessageRole.USER.value, text
            )

    def _record_reply(
        self, options: ProcessMessageOptions, reply: str, result: ChatResult
    ) -> None:
        if self.conversations is None or options.conversation_id is None:
            return
        try:
            self.conversations.add_message(
                options.conversation_id,
                MessageRole.ASSISTANT.value,
                reply,
                response_messages=result.response_messages
                or [{"role": "assistant", "content": reply}],
            )
        except Exception:
            logger.exception(
                "Failed to store assistant reply for conversation %s",
                options.conversation_id,
            )

    def process(self, options: ProcessMessageOptions) -> None:
        platform = options.platform
        platform.set_status(PROCESSING_STATUS)
        try:
            self._record_user_turn(options)
            result = self.responder.respond(
                ChatRequest(
                    messages=options.messages,
                    bot_id=options.bot_id,
                    conversation_id=options.conversation_id,
                    model_id=options.model_id,
                    stream=platform.supports_streaming,
                    source=options.source,
                    webhook_payload=options.webhook_payload,
                )
            )
            reply = self._deliver(platform, result)
            platform.set_status("")
        except Exception:
            logger.exception(
                "Error processing %s message for bot %s (conversation %s)",
                options.deployment_type.value,
                options.bot_id,
                options.conversation_id,
            )
            platform.set_status("")
            try:
                platform.send_message(APOLOGY)
            except Exception:
                logger.exception("Error sending apology on %s", options.deployment_type.value)
            return

        self._record_reply(options, reply, result)


__all__ = ["APOLOGY", "MessageProcessor", "PROCESSING_STATUS", "ProcessMessageOptions"]
