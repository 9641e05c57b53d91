"""Normalized records delivered to callers on every transport.

Providers only ever return text; the API, relay and session layers wrap that
text in a :class:`Message` so unary responses, WebSocket frames and logs all
share one shape.
"""

import uuid
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MessageType = Literal["status", "response", "error", "chunk"]


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Message(BaseModel):
    """One completed, partial or in-progress turn.

    Attributes:
        type: ``"status"`` while loading, ``"chunk"`` for a streamed
            fragment, ``"response"`` for a finished answer, ``"error"`` when
            the generation failed.
        id: Unique message identifier.
        model: Backend model name that produced (or was asked for) the content.
        question: The prompt this message answers.
        role: ``"assistant"`` for generated content, ``"system"`` for errors.
        content: Generated text, error description, or empty while loading.
        timestamp: ISO-8601 UTC creation time.
        loading: ``True`` while the answer is still being produced.
    """

    model_config = ConfigDict(frozen=True)

    type: MessageType = "response"
    id: str = Field(default_factory=_new_id)
    model: str = ""
    question: str
    role: str = "assistant"
    content: str = ""
    timestamp: str = Field(default_factory=_now)
    loading: bool = False


class ConnectionStatus(BaseModel):
    """First frame sent on every WebSocket connection."""

    model_config = ConfigDict(frozen=True)

    type: Literal["connection"] = "connection"
    status: Literal["connected"] = "connected"
    message: str = "Connected to LLM Relay WebSocket"


def loading_message(question: str, model: str = "") -> Message:
    return Message(type="status", question=question, model=model, loading=True)


def chunk_message(question: str, fragment: str, model: str = "") -> Message:
    return Message(type="chunk", question=question, model=model, content=fragment, loading=True)


def response_message(question: str, content: str, model: str = "") -> Message:
    return Message(type="response", question=question, model=model, content=content)


def error_message(question: str, detail: str, model: str = "") -> Message:
    return Message(type="error", question=question, model=model, role="system", content=detail)
