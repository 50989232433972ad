"""SQLite-backed document store.

Persists clients, documents, chunks, connected sheets, conversation turns
and the spreadsheet operations log to a local SQLite database at
``data/knowledge.db``.  Uses ``aiosqlite`` for async I/O.

Embeddings, tag/keyword lists and sheet tab metadata are stored as JSON
text.  Foreign keys are enabled per connection so deleting a document
cascades to its chunks.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.conversation import Client, ConversationTurn, SourceReference
from src.models.document import Chunk, Document, DocumentStatus, SourceType
from src.models.sheet import ConnectedSheet, OperationLogEntry, SheetTab
from src.services.similarity import parse_embedding
from src.utils.errors import NotFoundError, StoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge.db")

_CREATE_CLIENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS clients (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT,
    created_at  TEXT NOT NULL
);
"""

_CREATE_DOCUMENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    client_id       TEXT NOT NULL,
    source_type     TEXT NOT NULL DEFAULT 'upload',
    file_name       TEXT NOT NULL DEFAULT '',
    file_type       TEXT NOT NULL DEFAULT '',
    file_url        TEXT,
    file_size       INTEGER NOT NULL DEFAULT 0,
    title           TEXT,
    summary         TEXT,
    tags            TEXT NOT NULL DEFAULT '[]',
    keywords        TEXT NOT NULL DEFAULT '[]',
    topic           TEXT,
    sentiment       TEXT,
    sentiment_score REAL,
    embedding       TEXT,
    status          TEXT NOT NULL DEFAULT 'pending',
    chunk_count     INTEGER NOT NULL DEFAULT 0,
    google_doc_id   TEXT,
    content_hash    TEXT,
    last_synced     TEXT,
    sheet_tabs      TEXT NOT NULL DEFAULT '[]',
    created_at      TEXT NOT NULL
);
"""

_CREATE_CHUNKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS document_chunks (
    id          TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    start_index INTEGER NOT NULL,
    end_index   INTEGER NOT NULL,
    content     TEXT NOT NULL,
    embedding   TEXT
);
"""

_CREATE_SHEETS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS connected_sheets (
    id             TEXT PRIMARY KEY,
    client_id      TEXT NOT NULL,
    spreadsheet_id TEXT NOT NULL,
    sheet_url      TEXT NOT NULL DEFAULT '',
    name           TEXT NOT NULL DEFAULT '',
    sheet_tabs     TEXT NOT NULL DEFAULT '[]',
    last_synced    TEXT,
    UNIQUE (client_id, spreadsheet_id)
);
"""

_CREATE_TURNS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chat_history (
    id              TEXT PRIMARY KEY,
    client_id       TEXT NOT NULL,
    role            TEXT NOT NULL,
    content         TEXT NOT NULL,
    context_docs    TEXT NOT NULL DEFAULT '[]',
    sources         TEXT NOT NULL DEFAULT '[]',
    conversation_id TEXT,
    created_at      TEXT NOT NULL
);
"""

_CREATE_OPERATIONS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS sheet_operations (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    spreadsheet_id TEXT NOT NULL,
    operation_type TEXT NOT NULL,
    range          TEXT NOT NULL DEFAULT '',
    cells_affected INTEGER NOT NULL DEFAULT 0,
    performed_by   TEXT NOT NULL DEFAULT 'ai',
    created_at     TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_client ON documents(client_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id, chunk_index);",
    "CREATE INDEX IF NOT EXISTS idx_sheets_client ON connected_sheets(client_id);",
    "CREATE INDEX IF NOT EXISTS idx_history_client ON chat_history(client_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_history_conversation ON chat_history(conversation_id);",
    "CREATE INDEX IF NOT EXISTS idx_operations_sheet ON sheet_operations(spreadsheet_id);",
]

_DOCUMENT_COLUMNS = (
    "id", "client_id", "source_type", "file_name", "file_type", "file_url",
    "file_size", "title", "summary", "tags", "keywords", "topic", "sentiment",
    "sentiment_score", "embedding", "status", "chunk_count", "google_doc_id",
    "content_hash", "last_synced", "sheet_tabs", "created_at",
)
_JSON_DOCUMENT_COLUMNS = frozenset({"tags", "keywords", "embedding", "sheet_tabs"})
_UPDATABLE_DOCUMENT_COLUMNS = frozenset(_DOCUMENT_COLUMNS) - {"id", "client_id", "created_at"}

_INSERT_DOCUMENT_SQL = (
    f"INSERT INTO documents ({', '.join(_DOCUMENT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _DOCUMENT_COLUMNS)});"
)

_INSERT_CHUNK_SQL = """\
INSERT INTO document_chunks (id, document_id, chunk_index, start_index, end_index, content, embedding)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_UPSERT_SHEET_SQL = """\
INSERT INTO connected_sheets (id, client_id, spreadsheet_id, sheet_url, name, sheet_tabs, last_synced)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (client_id, spreadsheet_id) DO UPDATE SET
    sheet_url   = excluded.sheet_url,
    name        = excluded.name,
    sheet_tabs  = excluded.sheet_tabs,
    last_synced = excluded.last_synced;
"""

_INSERT_TURN_SQL = """\
INSERT INTO chat_history (id, client_id, role, content, context_docs, sources, conversation_id, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_OPERATION_SQL = """\
INSERT INTO sheet_operations (spreadsheet_id, operation_type, range, cells_affected, performed_by, created_at)
VALUES (?, ?, ?, ?, ?, ?);
"""


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _json_list(value: str | None) -> list[Any]:
    if not value:
        return []
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return []
    return decoded if isinstance(decoded, list) else []


class SQLiteDocumentStore(IDocumentStore):
    """SQLite-backed persistence for the whole knowledge base."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path))

    async def _open(self, db: aiosqlite.Connection) -> None:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON;")

    async def initialize(self) -> None:
        """Create every table and index if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for create_sql in (
                _CREATE_CLIENTS_TABLE_SQL,
                _CREATE_DOCUMENTS_TABLE_SQL,
                _CREATE_CHUNKS_TABLE_SQL,
                _CREATE_SHEETS_TABLE_SQL,
                _CREATE_TURNS_TABLE_SQL,
                _CREATE_OPERATIONS_TABLE_SQL,
            ):
                await db.execute(create_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def create_client(self, client: Client) -> Client:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO clients (id, name, description, created_at) VALUES (?, ?, ?, ?);",
                (client.id, client.name, client.description, client.created_at.isoformat()),
            )
            await db.commit()
        return client

    async def get_client(self, client_id: str) -> Client | None:
        async with self._connect() as db:
            await self._open(db)
            cursor = await db.execute("SELECT * FROM clients WHERE id = ?;", (client_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return Client(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_at=_from_iso(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            client_id=row["client_id"],
            source_type=SourceType(row["source_type"]),
            file_name=row["file_name"],
            file_type=row["file_type"],
            file_url=row["file_url"],
            file_size=row["file_size"],
            title=row["title"],
            summary=row["summary"],
            tags=_json_list(row["tags"]),
            keywords=_json_list(row["keywords"]),
            topic=row["topic"],
            sentiment=row["sentiment"] or None,
            sentiment_score=row["sentiment_score"],
            embedding=parse_embedding(row["embedding"]),
            status=DocumentStatus(row["status"]),
            chunk_count=row["chunk_count"],
            google_doc_id=row["google_doc_id"],
            content_hash=row["content_hash"],
            last_synced=_from_iso(row["last_synced"]),
            sheet_tabs=_json_list(row["sheet_tabs"]),
            created_at=_from_iso(row["created_at"]),
        )

    @staticmethod
    def _document_value(column: str, value: Any) -> Any:
        if column in _JSON_DOCUMENT_COLUMNS:
            return json.dumps(list(value or []))
        return _to_db(value)

    async def insert_document(self, document: Document) -> Document:
        data = document.model_dump()
        params = tuple(self._document_value(col, data[col]) for col in _DOCUMENT_COLUMNS)
        try:
            async with self._connect() as db:
                await db.execute(_INSERT_DOCUMENT_SQL, params)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to insert document: {exc}", provider_name="sqlite") from exc
        return document

    async def update_document(self, document_id: str, **fields: Any) -> Document:
        unknown = set(fields) - _UPDATABLE_DOCUMENT_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update document fields: {sorted(unknown)}")

        if fields:
            assignments = ", ".join(f"{col} = ?" for col in fields)
            params = [self._document_value(col, value) for col, value in fields.items()]
            async with self._connect() as db:
                cursor = await db.execute(
                    f"UPDATE documents SET {assignments} WHERE id = ?;",
                    (*params, document_id),
                )
                await db.commit()
                if cursor.rowcount == 0:
                    raise NotFoundError(message=f"Document not found: {document_id}")

        document = await self.get_document(document_id)
        if document is None:
            raise NotFoundError(message=f"Document not found: {document_id}")
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            await self._open(db)
            cursor = await db.execute("SELECT * FROM documents WHERE id = ?;", (document_id,))
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def list_documents(
        self,
        client_id: str,
        processed_only: bool = False,
        source_type: SourceType | None = None,
    ) -> list[Document]:
        query = "SELECT * FROM documents WHERE client_id = ?"
        params: list[Any] = [client_id]
        if processed_only:
            query += " AND status = ?"
            params.append(DocumentStatus.PROCESSED.value)
        if source_type is not None:
            query += " AND source_type = ?"
            params.append(source_type.value)
        query += " ORDER BY created_at DESC, rowid DESC;"

        try:
            async with self._connect() as db:
                await self._open(db)
                cursor = await db.execute(query, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to list documents: {exc}", provider_name="sqlite") from exc
        return [self._row_to_document(row) for row in rows]

    async def delete_document(self, document_id: str) -> bool:
        async with self._connect() as db:
            await self._open(db)
            await db.execute("DELETE FROM document_chunks WHERE document_id = ?;", (document_id,))
            cursor = await db.execute("DELETE FROM documents WHERE id = ?;", (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("document_deleted", document_id=document_id)
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def insert_chunks(self, chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        rows = [
            (
                chunk.id,
                chunk.document_id,
                chunk.chunk_index,
                chunk.start_index,
                chunk.end_index,
                chunk.content,
                json.dumps(chunk.embedding),
            )
            for chunk in chunks
        ]
        try:
            async with self._connect() as db:
                await self._open(db)
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to insert chunks: {exc}", provider_name="sqlite") from exc
        return len(rows)

    async def list_chunks(self, document_ids: list[str]) -> list[Chunk]:
        if not document_ids:
            return []
        placeholders = ", ".join("?" for _ in document_ids)
        query = (
            "SELECT * FROM document_chunks "
            f"WHERE document_id IN ({placeholders}) "
            "ORDER BY document_id, chunk_index;"
        )
        try:
            async with self._connect() as db:
                await self._open(db)
                cursor = await db.execute(query, document_ids)
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to list chunks: {exc}", provider_name="sqlite") from exc
        return [
            Chunk(
                id=row["id"],
                document_id=row["document_id"],
                chunk_index=row["chunk_index"],
                start_index=row["start_index"],
                end_index=row["end_index"],
                content=row["content"],
                embedding=parse_embedding(row["embedding"]),
            )
            for row in rows
        ]

    async def delete_chunks(self, document_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM document_chunks WHERE document_id = ?;", (document_id,)
            )
            await db.commit()
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Connected sheets
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_sheet(row: aiosqlite.Row) -> ConnectedSheet:
        tabs = [SheetTab(**tab) for tab in _json_list(row["sheet_tabs"]) if isinstance(tab, dict)]
        return ConnectedSheet(
            id=row["id"],
            client_id=row["client_id"],
            spreadsheet_id=row["spreadsheet_id"],
            sheet_url=row["sheet_url"],
            name=row["name"],
            sheet_tabs=tabs,
            last_synced=_from_iso(row["last_synced"]),
        )

    async def upsert_connected_sheet(self, sheet: ConnectedSheet) -> ConnectedSheet:
        last_synced = sheet.last_synced or datetime.now(timezone.utc)
        async with self._connect() as db:
            await self._open(db)
            await db.execute(
                _UPSERT_SHEET_SQL,
                (
                    sheet.id,
                    sheet.client_id,
                    sheet.spreadsheet_id,
                    sheet.sheet_url,
                    sheet.name,
                    json.dumps([tab.model_dump() for tab in sheet.sheet_tabs]),
                    last_synced.isoformat(),
                ),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT * FROM connected_sheets WHERE client_id = ? AND spreadsheet_id = ?;",
                (sheet.client_id, sheet.spreadsheet_id),
            )
            row = await cursor.fetchone()
        return self._row_to_sheet(row)

    async def list_connected_sheets(self, client_id: str) -> list[ConnectedSheet]:
        async with self._connect() as db:
            await self._open(db)
            cursor = await db.execute(
                "SELECT * FROM connected_sheets WHERE client_id = ? ORDER BY rowid;",
                (client_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_sheet(row) for row in rows]

    async def delete_connected_sheet(self, client_id: str, spreadsheet_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM connected_sheets WHERE client_id = ? AND spreadsheet_id = ?;",
                (client_id, spreadsheet_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_turn(row: aiosqlite.Row) -> ConversationTurn:
        sources = [
            SourceReference(**src) for src in _json_list(row["sources"]) if isinstance(src, dict)
        ]
        return ConversationTurn(
            id=row["id"],
            client_id=row["client_id"],
            role=row["role"],
            content=row["content"],
            context_docs=_json_list(row["context_docs"]),
            sources=sources,
            conversation_id=row["conversation_id"],
            created_at=_from_iso(row["created_at"]),
        )

    async def append_turn(self, turn: ConversationTurn) -> ConversationTurn:
        turn_id = turn.id or str(uuid.uuid4())
        async with self._connect() as db:
            await db.execute(
                _INSERT_TURN_SQL,
                (
                    turn_id,
                    turn.client_id,
                    turn.role.value,
                    turn.content,
                    json.dumps(turn.context_docs),
                    json.dumps([src.model_dump() for src in turn.sources]),
                    turn.conversation_id,
                    turn.created_at.isoformat(),
                ),
            )
            await db.commit()
        return turn if turn.id else turn.model_copy(update={"id": turn_id})

    async def recent_turns(self, client_id: str, limit: int) -> list[ConversationTurn]:
        async with self._connect() as db:
            await self._open(db)
            cursor = await db.execute(
                "SELECT * FROM chat_history WHERE client_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?;",
                (client_id, limit),
            )
            rows = await cursor.fetchall()
        return [self._row_to_turn(row) for row in rows]

    async def conversation_turns(
        self, client_id: str, conversation_id: str, limit: int
    ) -> list[ConversationTurn]:
        async with self._connect() as db:
            await self._open(db)
            cursor = await db.execute(
                "SELECT * FROM chat_history WHERE client_id = ? AND conversation_id = ? "
                "ORDER BY created_at ASC, rowid ASC LIMIT ?;",
                (client_id, conversation_id, limit),
            )
            rows = await cursor.fetchall()
        return [self._row_to_turn(row) for row in rows]

    async def clear_turns(self, client_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM chat_history WHERE client_id = ?;", (client_id,))
            await db.commit()
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Operations log
    # ------------------------------------------------------------------

    async def log_operation(self, entry: OperationLogEntry) -> None:
        try:
            async with self._connect() as db:
                await db.execute(
                    _INSERT_OPERATION_SQL,
                    (
                        entry.spreadsheet_id,
                        entry.operation_type,
                        entry.range,
                        entry.cells_affected,
                        entry.performed_by,
                        entry.created_at.isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(message=f"Failed to log operation: {exc}", provider_name="sqlite") from exc
        logger.info(
            "sheet_operation_logged",
            spreadsheet_id=entry.spreadsheet_id,
            operation_type=entry.operation_type,
            cells_affected=entry.cells_affected,
            performed_by=entry.performed_by,
        )

    async def list_operations(
        self, spreadsheet_id: str, limit: int = 50
    ) -> list[OperationLogEntry]:
        async with self._connect() as db:
            await self._open(db)
            cursor = await db.execute(
                "SELECT * FROM sheet_operations WHERE spreadsheet_id = ? "
                "ORDER BY id DESC LIMIT ?;",
                (spreadsheet_id, limit),
            )
            rows = await cursor.fetchall()
        return [
            OperationLogEntry(
                id=row["id"],
                spreadsheet_id=row["spreadsheet_id"],
                operation_type=row["operation_type"],
                range=row["range"],
                cells_affected=row["cells_affected"],
                performed_by=row["performed_by"],
                created_at=_from_iso(row["created_at"]),
            )
            for row in rows
        ]
