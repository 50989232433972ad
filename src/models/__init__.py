"""Pydantic v2 data models.  All models are frozen."""

from src.models.conversation import (
    Client,
    ConversationTurn,
    ImageAttachment,
    Role,
    SourceReference,
)
from src.models.document import (
    Chunk,
    Document,
    DocumentAnalysis,
    DocumentStatus,
    RemoteContent,
    ScoredChunk,
    ScoredDocument,
    SearchResult,
    Sentiment,
    SourceType,
    TextSpan,
)
from src.models.sheet import ConnectedSheet, OperationLogEntry, SheetTab, SpreadsheetInfo
from src.models.tools import ChatCompletion, OrchestratorResult, ToolCall, ToolOperation
from src.models.verification import (
    BackendStatus,
    VerificationEvent,
    VerificationOptions,
    VerificationResult,
    VerificationStatus,
)

__all__ = [
    "BackendStatus",
    "ChatCompletion",
    "Chunk",
    "Client",
    "ConnectedSheet",
    "ConversationTurn",
    "Document",
    "DocumentAnalysis",
    "DocumentStatus",
    "ImageAttachment",
    "OperationLogEntry",
    "OrchestratorResult",
    "RemoteContent",
    "Role",
    "ScoredChunk",
    "ScoredDocument",
    "SearchResult",
    "Sentiment",
    "SheetTab",
    "SourceReference",
    "SourceType",
    "SpreadsheetInfo",
    "TextSpan",
    "ToolCall",
    "ToolOperation",
    "VerificationEvent",
    "VerificationOptions",
    "VerificationResult",
    "VerificationStatus",
]
