"""Abstract base class for the persistent client/document/chunk/chat store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.conversation import Client, ConversationTurn
from src.models.document import Chunk, Document, SourceType
from src.models.sheet import ConnectedSheet, OperationLogEntry


# Concrete implementations: SQLiteDocumentStore
# Located in: src/providers/store/
class IDocumentStore(ABC):
    """Contract for persisting every tenant-scoped row the application owns.

    Embeddings are opaque float lists to callers; stores may serialize them
    however they like but must read undecodable values back as ``[]``.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if needed."""

    # -- Clients -------------------------------------------------------------

    @abstractmethod
    async def create_client(self, client: Client) -> Client: ...

    @abstractmethod
    async def get_client(self, client_id: str) -> Client | None: ...

    # -- Documents -----------------------------------------------------------

    @abstractmethod
    async def insert_document(self, document: Document) -> Document: ...

    @abstractmethod
    async def update_document(self, document_id: str, **fields: Any) -> Document:
        """Update named fields and return the refreshed document.

        Raises
        ------
        src.utils.errors.NotFoundError
            If the document does not exist.
        """

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None: ...

    @abstractmethod
    async def list_documents(
        self,
        client_id: str,
        processed_only: bool = False,
        source_type: SourceType | None = None,
    ) -> list[Document]:
        """Return a client's documents, newest first."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and its chunks; return ``False`` if it did not exist."""

    # -- Chunks --------------------------------------------------------------

    @abstractmethod
    async def insert_chunks(self, chunks: list[Chunk]) -> int:
        """Insert a batch of chunks as one unit; return the number inserted."""

    @abstractmethod
    async def list_chunks(self, document_ids: list[str]) -> list[Chunk]:
        """Return chunks for the given documents ordered by document, then index."""

    @abstractmethod
    async def delete_chunks(self, document_id: str) -> int: ...

    # -- Connected sheets ----------------------------------------------------

    @abstractmethod
    async def upsert_connected_sheet(self, sheet: ConnectedSheet) -> ConnectedSheet:
        """Insert or refresh by (client_id, spreadsheet_id); return the stored row."""

    @abstractmethod
    async def list_connected_sheets(self, client_id: str) -> list[ConnectedSheet]: ...

    @abstractmethod
    async def delete_connected_sheet(self, client_id: str, spreadsheet_id: str) -> bool: ...

    # -- Conversation --------------------------------------------------------

    @abstractmethod
    async def append_turn(self, turn: ConversationTurn) -> ConversationTurn: ...

    @abstractmethod
    async def recent_turns(self, client_id: str, limit: int) -> list[ConversationTurn]:
        """Return the newest *limit* turns, newest first."""

    @abstractmethod
    async def conversation_turns(
        self, client_id: str, conversation_id: str, limit: int
    ) -> list[ConversationTurn]:
        """Return up to *limit* turns of one conversation, oldest first."""

    @abstractmethod
    async def clear_turns(self, client_id: str) -> int: ...

    # -- Operations log ------------------------------------------------------

    @abstractmethod
    async def log_operation(self, entry: OperationLogEntry) -> None: ...

    @abstractmethod
    async def list_operations(
        self, spreadsheet_id: str, limit: int = 50
    ) -> list[OperationLogEntry]:
        """Return the newest entries first."""
