"""Client and conversation models.

Turns are append-only.  Chat history is read newest-first from the store
and reversed into chronological order before it reaches the LLM.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(BaseModel):
    """A tenant.  The description doubles as the "Client Context" document."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SourceReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    similarity: float
    is_image: bool = False


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    role: Role
    content: str
    context_docs: list[str] = Field(default_factory=list)
    sources: list[SourceReference] = Field(default_factory=list)
    conversation_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ImageAttachment(BaseModel):
    """An image sent with a chat message or pulled from an image document."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    media_type: str = "image/jpeg"
    data: bytes
    document_id: str | None = None

    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{base64.b64encode(self.data).decode('ascii')}"
