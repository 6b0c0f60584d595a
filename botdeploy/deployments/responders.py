"""Response generation behind the shared message processor.

When ``OPENAI_API_KEY`` is configured replies come from OpenAI chat
completions; otherwise a deterministic echo keeps the pipeline usable in
development and CI without network access.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import uuid
from collections.abc import Iterable, Iterator
from typing import Any, Dict, List, Optional, Protocol

from openai import OpenAI

from ..conversations.models import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


@dataclasses.dataclass
class ChatRequest:
    messages: List[ChatMessage]
    bot_id: str
    conversation_id: Optional[uuid.UUID] = None
    model_id: Optional[str] = None
    stream: bool = False
    source: str = "deployment"
    webhook_payload: Optional[Dict[str, Any]] = None


@dataclasses.dataclass
class ChatResult:
    """Either the full reply text or an iterator of text chunks.

    ``response_messages`` holds the structured messages of the reply when the
    backend produces them; they are stored so later turns can replay them.
    """

    text: Optional[str] = None
    stream: Optional[Iterable[str]] = None
    response_messages: Optional[List[Dict[str, Any]]] = None


class Responder(Protocol):
    def respond(self, request: ChatRequest) -> ChatResult: ...


class EchoResponder:
    """Deterministic fallback used when no model backend is configured."""

    def respond(self, request: ChatRequest) -> ChatResult:
        question = ""
        for message in reversed(request.messages):
            if message.role == "user" and isinstance(message.content, str):
                question = message.content
                break
        answer = f"You said: {question}"
        if request.stream:
            return ChatResult(stream=iter([answer]))
        return ChatResult(text=answer)


class OpenAIResponder:
    """Chat completions through the OpenAI SDK."""

    def __init__(
        self,
        client: Any,
        *,
        model: str = DEFAULT_MODEL,
        system_prompt: str | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.system_prompt = system_prompt

    def _messages(self, request: ChatRequest) -> list[dict[str, Any]]:
        messages = [message.as_dict() for message in request.messages]
        if self.system_prompt:
            messages.insert(0, {"role": "system", "content": self.system_prompt})
        return messages

    def _iter_chunks(self, completion: Iterable[Any]) -> Iterator[str]:
        for chunk in completion:
            if chunk.choices:
                token = getattr(chunk.choices[0].delta, "content", None)
                if token:
                    yield token

    def respond(self, request: ChatRequest) -> ChatResult:
        completion = self.client.chat.completions.create(
            model=request.model_id or self.model,
            messages=self._messages(request),
            stream=request.stream,
        )
        if request.stream:
            return ChatResult(stream=self._iter_chunks(completion))
        text = (completion.choices[0].message.content or "").strip()
        return ChatResult(
            text=text, response_messages=[{"role": "assistant", "content": text}]
        )


def build_default_responder() -> Responder:
    if os.getenv("OPENAI_API_KEY"):
        logger.info("Using OpenAI responder")
        return OpenAIResponder(
            OpenAI(),
            model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
            system_prompt=os.getenv("SYSTEM_PROMPT"),
        )
    logger.info("OPENAI_API_KEY not set; using echo responder")
    return EchoResponder()


__all__ = [
    "ChatRequest",
    "ChatResult",
    "EchoResponder",
    "OpenAIResponder",
    "Responder",
    "build_default_responder",
]
