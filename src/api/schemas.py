"""Pydantic request/response schemas for the knowledge agent API.

Defines the public contract for every REST endpoint: documents, search,
chat, the agent API, connected sheets and leads verification.

# ─── HOW SCHEMAS WORK (Junior Developer Guide) ────────────────────────
#
# These Pydantic models define the *shape* of every HTTP request body
# and response body in the API.  FastAPI uses them for:
#
#   1. **Validation** - Incoming JSON is automatically validated against
#      the schema.  Invalid requests get a 422 error with details.
#   2. **Serialization** - Outgoing objects are converted to JSON
#      matching the schema (via response_model=...).
#   3. **Documentation** - FastAPI generates OpenAPI docs at /docs.
#
# Convention: Request schemas end with "Request", response schemas
# end with "Response".  Stored embeddings never leave the server, so
# documents and chunks are exposed through the *Out views below.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.models.conversation import ConversationTurn, SourceReference
from src.models.document import Chunk, Document, DocumentStatus, ScoredChunk, ScoredDocument
from src.models.sheet import ConnectedSheet, OperationLogEntry
from src.models.tools import ToolOperation
from src.models.verification import BackendStatus, VerificationResult


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentOut(BaseModel):
    """A document without its embedding."""

    id: str
    client_id: str
    source_type: str
    file_name: str
    file_type: str
    file_url: str | None = None
    file_size: int = 0
    title: str | None = None
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    topic: str | None = None
    sentiment: str | None = None
    sentiment_score: float | None = None
    status: DocumentStatus
    processed: bool
    chunk_count: int = 0
    google_doc_id: str | None = None
    last_synced: datetime | None = None
    sheet_tabs: list[str] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentOut:
        data = document.model_dump(exclude={"embedding", "content_hash"})
        return cls(**data, processed=document.processed)


class DocumentListResponse(BaseModel):
    documents: list[DocumentOut]
    total: int


class ChunkOut(BaseModel):
    id: str
    document_id: str
    chunk_index: int
    start_index: int
    end_index: int
    content: str

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> ChunkOut:
        return cls(**chunk.model_dump(exclude={"embedding"}))


class ChunkListResponse(BaseModel):
    document_id: str
    chunks: list[ChunkOut]
    total: int


class DeletedResponse(BaseModel):
    id: str
    deleted: bool


class DocumentAcceptedResponse(BaseModel):
    """Returned when a source was registered and processing was scheduled."""

    document: DocumentOut
    message: str


class SourceUrlRequest(BaseModel):
    url: str = Field(..., min_length=8, max_length=2048)


class SyncAllResponse(BaseModel):
    checked: int
    synced: int
    unchanged: int
    errors: list[dict[str, str]] = Field(default_factory=list)


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    limit: int = Field(default=5, ge=1, le=50)
    include_chunks: bool = True


class ScoredDocumentOut(BaseModel):
    document: DocumentOut
    similarity: float

    @classmethod
    def from_scored(cls, scored: ScoredDocument) -> ScoredDocumentOut:
        return cls(document=DocumentOut.from_document(scored.document), similarity=scored.similarity)


class ChunkHitOut(BaseModel):
    chunk: ChunkOut
    document_title: str
    similarity_score: float

    @classmethod
    def from_scored(cls, scored: ScoredChunk) -> ChunkHitOut:
        return cls(
            chunk=ChunkOut.from_chunk(scored.chunk),
            document_title=scored.document_title,
            similarity_score=scored.similarity,
        )


class SearchResponse(BaseModel):
    query: str
    documents: list[ScoredDocumentOut]
    chunks: list[ChunkHitOut]


# ---------------------------------------------------------------------------
# Chat / agent
# ---------------------------------------------------------------------------


class ChatHistoryResponse(BaseModel):
    messages: list[ConversationTurn]


class ChatResponse(BaseModel):
    message: ConversationTurn
    context_documents: list[SourceReference]
    images_processed: dict[str, int]
    route: str
    sheet_operations: list[ToolOperation] = Field(default_factory=list)


class ClearHistoryResponse(BaseModel):
    deleted: int


class AgentQueryRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=10000)
    client_id: str = Field(..., min_length=1)
    save_history: bool = False
    conversation_id: str | None = None


class AgentQueryResponse(BaseModel):
    response: str
    client: dict[str, str]
    context: dict[str, Any]
    operations: list[ToolOperation] = Field(default_factory=list)
    conversation_id: str | None = None


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------


class SheetConnectRequest(BaseModel):
    client_id: str = Field(..., min_length=1)
    sheet_url: str = Field(..., min_length=8)
    name: str | None = None


class ConnectedSheetListResponse(BaseModel):
    sheets: list[ConnectedSheet]


class OperationListResponse(BaseModel):
    spreadsheet_id: str
    operations: list[OperationLogEntry]


# ---------------------------------------------------------------------------
# Leads verification
# ---------------------------------------------------------------------------


class BackendsStatusResponse(BaseModel):
    email: BackendStatus
    phone: BackendStatus


class BackendActionResponse(BaseModel):
    success: bool
    message: str
    status: BackendStatus | None = None


class VerifyEmailRequest(BaseModel):
    email: str = Field(..., min_length=1)


class VerifyPhoneRequest(BaseModel):
    phone: str = Field(..., min_length=1)
    use_numverify: bool = False


class VerificationResponse(BaseModel):
    result: VerificationResult


class SheetPreviewResponse(BaseModel):
    spreadsheet_info: dict[str, Any]
    sheet_name: str
    columns: list[dict[str, Any]]
    total_rows: int
