"""Document, chunk and retrieval models for the client knowledge base.

A client's knowledge base is a set of :class:`Document` rows (one per
uploaded file, fetched URL or imported Google Doc/Sheet), each split into
overlapping :class:`Chunk` rows with their own embeddings.  Retrieval
scores documents first, then chunks of the best documents, and returns a
:class:`SearchResult`.

All models are frozen; updates go through ``model_copy(update=...)`` or
through the document store's ``update_document``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.sheet import SheetTab


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Ingestion lifecycle: created ``pending``, set once to processed/failed."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class SourceType(str, Enum):
    UPLOAD = "upload"
    URL = "url"
    GOOGLE = "google"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


# Mime types accepted by the upload and URL endpoints.
ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/msword",
        "text/plain",
        "image/png",
        "image/jpeg",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
        "text/csv",
    }
)

GOOGLE_DOC_TYPE = "google_doc"
GOOGLE_SHEET_TYPE = "google_sheet"


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """One knowledge source owned by a client."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID).")
    client_id: str = Field(description="Owning client (tenant).")
    source_type: SourceType = Field(default=SourceType.UPLOAD)
    file_name: str = Field(default="", description="Original file name or Google title.")
    file_type: str = Field(default="", description="Mime type, or google_doc / google_sheet.")
    file_url: str | None = Field(default=None)
    file_size: int = Field(default=0, ge=0)
    title: str | None = Field(default=None)
    summary: str | None = Field(
        default=None,
        description="LLM summary, or 'Error: <message>' when ingestion failed.",
    )
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    topic: str | None = Field(default=None)
    sentiment: Sentiment | None = Field(default=None)
    sentiment_score: float | None = Field(default=None, ge=-1.0, le=1.0)
    embedding: list[float] = Field(default_factory=list)
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    chunk_count: int = Field(default=0, ge=0)
    google_doc_id: str | None = Field(default=None)
    content_hash: str | None = Field(default=None)
    last_synced: datetime | None = Field(default=None)
    sheet_tabs: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def processed(self) -> bool:
        return self.status == DocumentStatus.PROCESSED

    @property
    def is_image(self) -> bool:
        return self.file_type.startswith("image/")

    @property
    def display_title(self) -> str:
        return self.title or self.file_name or "Unknown"


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------
class TextSpan(BaseModel):
    """A chunker output window: stripped text plus its raw offsets in the parent."""

    model_config = ConfigDict(frozen=True)

    text: str
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)


class Chunk(BaseModel):
    """An embedded window of a document's text."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    chunk_index: int = Field(ge=0, description="0-based, contiguous within a document.")
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)
    content: str
    embedding: list[float] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# LLM analysis
# ---------------------------------------------------------------------------
class DocumentAnalysis(BaseModel):
    """Structured metadata the LLM returns for a document."""

    model_config = ConfigDict(frozen=True)

    title: str
    summary: str
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    topic: str = ""
    sentiment: Sentiment = Sentiment.NEUTRAL
    sentiment_score: float = Field(default=0.0, ge=-1.0, le=1.0)

    @field_validator("tags", "keywords", mode="before")
    @classmethod
    def _coerce_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if not isinstance(value, (list, tuple)):
            raise ValueError("expected a list of strings")
        return [str(item) for item in value]

    def embedding_text(self) -> str:
        """The string embedded as the document-level vector."""
        return f"{self.title} {self.summary} {' '.join(self.keywords)}"


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class ScoredDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    document: Document
    similarity: float


class ScoredChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    document_title: str
    similarity: float


class SearchResult(BaseModel):
    """Top documents (no floor) plus their best chunks (above the floor)."""

    model_config = ConfigDict(frozen=True)

    documents: list[ScoredDocument] = Field(default_factory=list)
    chunks: list[ScoredChunk] = Field(default_factory=list)


class RemoteContent(BaseModel):
    """Text fetched from a remote source (Google Doc / Sheet)."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    tabs: list[SheetTab] = Field(default_factory=list)
