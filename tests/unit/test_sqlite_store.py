"""Unit tests for the SQLite document store (real database in tmp_path)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.models.conversation import Client, ConversationTurn, Role, SourceReference
from src.models.document import Chunk, Document, DocumentStatus, Sentiment, SourceType
from src.models.sheet import OperationLogEntry, SheetTab
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.utils.errors import NotFoundError
from tests.fakes import make_connected_sheet

# ── Fixtures ──────────────────────────────────────────────────────────

_T0 = datetime(2024, 5, 17, 9, 0, tzinfo=timezone.utc)


def _doc(doc_id: str, **fields: object) -> Document:
    return Document(id=doc_id, client_id="client-1", file_name=f"{doc_id}.txt", **fields)


def _turn(content: str, role: Role, minutes: int, conversation_id: str | None = None) -> ConversationTurn:
    return ConversationTurn(
        id="",
        client_id="client-1",
        role=role,
        content=content,
        conversation_id=conversation_id,
        created_at=_T0 + timedelta(minutes=minutes),
    )


# ── Clients ───────────────────────────────────────────────────────────


class TestClients:
    @pytest.mark.asyncio()
    async def test_round_trip(self, store: SQLiteDocumentStore) -> None:
        client = await store.get_client("client-1")

        assert client is not None
        assert client.name == "Acme Corp"
        assert client.description == "Acme sells industrial widgets."

    @pytest.mark.asyncio()
    async def test_unknown_client(self, store: SQLiteDocumentStore) -> None:
        assert await store.get_client("ghost") is None

    @pytest.mark.asyncio()
    async def test_create_second_client(self, store: SQLiteDocumentStore) -> None:
        await store.create_client(Client(id="client-2", name="Globex"))

        client = await store.get_client("client-2")

        assert client is not None and client.description is None


# ── Documents ─────────────────────────────────────────────────────────


class TestDocuments:
    @pytest.mark.asyncio()
    async def test_insert_and_get(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1", tags=["a", "b"], embedding=[0.5, 0.5]))

        doc = await store.get_document("d1")

        assert doc is not None
        assert doc.status == DocumentStatus.PENDING
        assert doc.tags == ["a", "b"]
        assert doc.embedding == [0.5, 0.5]
        assert doc.source_type == SourceType.UPLOAD

    @pytest.mark.asyncio()
    async def test_update_fields(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1"))

        doc = await store.update_document(
            "d1",
            status=DocumentStatus.PROCESSED,
            sentiment=Sentiment.POSITIVE,
            keywords=["acme"],
            chunk_count=3,
        )

        assert doc.status == DocumentStatus.PROCESSED
        assert doc.sentiment == Sentiment.POSITIVE
        assert doc.keywords == ["acme"]
        assert doc.chunk_count == 3

    @pytest.mark.asyncio()
    async def test_update_rejects_unknown_fields(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1"))

        with pytest.raises(ValueError, match="client_id"):
            await store.update_document("d1", client_id="client-2")

    @pytest.mark.asyncio()
    async def test_update_missing_document(self, store: SQLiteDocumentStore) -> None:
        with pytest.raises(NotFoundError, match="Document not found: ghost"):
            await store.update_document("ghost", title="x")

    @pytest.mark.asyncio()
    async def test_list_filters(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1", status=DocumentStatus.PROCESSED))
        await store.insert_document(_doc("d2"))
        await store.insert_document(
            _doc("d3", source_type=SourceType.GOOGLE, status=DocumentStatus.PROCESSED)
        )
        await store.insert_document(
            Document(id="other", client_id="client-2", status=DocumentStatus.PROCESSED)
        )

        everything = await store.list_documents("client-1")
        processed = await store.list_documents("client-1", processed_only=True)
        google = await store.list_documents("client-1", source_type=SourceType.GOOGLE)

        assert {d.id for d in everything} == {"d1", "d2", "d3"}
        assert {d.id for d in processed} == {"d1", "d3"}
        assert [d.id for d in google] == ["d3"]

    @pytest.mark.asyncio()
    async def test_delete_removes_chunks(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1"))
        await store.insert_chunks(
            [Chunk(id="c1", document_id="d1", chunk_index=0, start_index=0, end_index=5, content="hello")]
        )

        assert await store.delete_document("d1") is True
        assert await store.get_document("d1") is None
        assert await store.list_chunks(["d1"]) == []
        assert await store.delete_document("d1") is False


# ── Chunks ────────────────────────────────────────────────────────────


class TestChunks:
    @pytest.mark.asyncio()
    async def test_listed_in_index_order(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1"))
        chunks = [
            Chunk(
                id=f"c{i}",
                document_id="d1",
                chunk_index=i,
                start_index=i * 10,
                end_index=i * 10 + 10,
                content=f"part {i}",
                embedding=[float(i), 1.0],
            )
            for i in (2, 0, 1)
        ]

        assert await store.insert_chunks(chunks) == 3
        listed = await store.list_chunks(["d1"])

        assert [c.chunk_index for c in listed] == [0, 1, 2]
        assert listed[2].embedding == [2.0, 1.0]

    @pytest.mark.asyncio()
    async def test_delete_chunks(self, store: SQLiteDocumentStore) -> None:
        await store.insert_document(_doc("d1"))
        await store.insert_chunks(
            [Chunk(id="c1", document_id="d1", chunk_index=0, start_index=0, end_index=1, content="x")]
        )

        assert await store.delete_chunks("d1") == 1
        assert await store.insert_chunks([]) == 0


# ── Connected sheets ──────────────────────────────────────────────────


class TestConnectedSheets:
    @pytest.mark.asyncio()
    async def test_upsert_replaces_by_spreadsheet(self, store: SQLiteDocumentStore) -> None:
        await store.upsert_connected_sheet(make_connected_sheet(name="Leads"))
        updated = make_connected_sheet(name="Leads 2025").model_copy(
            update={"sheet_tabs": [SheetTab(sheet_id=7, title="Q1"), SheetTab(sheet_id=8, title="Q2")]}
        )

        saved = await store.upsert_connected_sheet(updated)
        sheets = await store.list_connected_sheets("client-1")

        assert len(sheets) == 1
        assert saved.name == "Leads 2025"
        assert [tab.title for tab in sheets[0].sheet_tabs] == ["Q1", "Q2"]
        assert sheets[0].last_synced is not None

    @pytest.mark.asyncio()
    async def test_delete(self, store: SQLiteDocumentStore) -> None:
        await store.upsert_connected_sheet(make_connected_sheet())

        assert await store.delete_connected_sheet("client-1", "sheet-1") is True
        assert await store.delete_connected_sheet("client-1", "sheet-1") is False
        assert await store.list_connected_sheets("client-1") == []


# ── Conversation ──────────────────────────────────────────────────────


class TestConversation:
    @pytest.mark.asyncio()
    async def test_recent_turns_newest_first(self, store: SQLiteDocumentStore) -> None:
        for minute, (content, role) in enumerate(
            [("q1", Role.USER), ("a1", Role.ASSISTANT), ("q2", Role.USER)]
        ):
            await store.append_turn(_turn(content, role, minute))

        recent = await store.recent_turns("client-1", 2)

        assert [t.content for t in recent] == ["q2", "a1"]

    @pytest.mark.asyncio()
    async def test_append_assigns_id_and_keeps_sources(self, store: SQLiteDocumentStore) -> None:
        turn = _turn("answer", Role.ASSISTANT, 0).model_copy(
            update={
                "context_docs": ["d1"],
                "sources": [SourceReference(id="d1", title="Report", similarity=0.8)],
            }
        )

        saved = await store.append_turn(turn)
        loaded = (await store.recent_turns("client-1", 1))[0]

        assert saved.id
        assert loaded.id == saved.id
        assert loaded.context_docs == ["d1"]
        assert loaded.sources[0].title == "Report"

    @pytest.mark.asyncio()
    async def test_conversation_turns_oldest_first(self, store: SQLiteDocumentStore) -> None:
        await store.append_turn(_turn("q1", Role.USER, 0, conversation_id="conv-1"))
        await store.append_turn(_turn("other", Role.USER, 1, conversation_id="conv-2"))
        await store.append_turn(_turn("a1", Role.ASSISTANT, 2, conversation_id="conv-1"))

        turns = await store.conversation_turns("client-1", "conv-1", 20)

        assert [t.content for t in turns] == ["q1", "a1"]

    @pytest.mark.asyncio()
    async def test_clear(self, store: SQLiteDocumentStore) -> None:
        await store.append_turn(_turn("q1", Role.USER, 0))
        await store.append_turn(_turn("a1", Role.ASSISTANT, 1))

        assert await store.clear_turns("client-1") == 2
        assert await store.recent_turns("client-1", 10) == []


# ── Operations log ────────────────────────────────────────────────────


class TestOperationsLog:
    @pytest.mark.asyncio()
    async def test_newest_first_per_spreadsheet(self, store: SQLiteDocumentStore) -> None:
        await store.log_operation(OperationLogEntry(spreadsheet_id="sheet-1", operation_type="write"))
        await store.log_operation(OperationLogEntry(spreadsheet_id="sheet-2", operation_type="clear"))
        await store.log_operation(
            OperationLogEntry(
                spreadsheet_id="sheet-1",
                operation_type="append",
                range="'Sheet1'!A:Z",
                cells_affected=4,
                performed_by="user",
            )
        )

        logged = await store.list_operations("sheet-1")

        assert [entry.operation_type for entry in logged] == ["append", "write"]
        assert logged[0].cells_affected == 4
        assert logged[0].performed_by == "user"
        assert logged[0].id is not None

    @pytest.mark.asyncio()
    async def test_limit(self, store: SQLiteDocumentStore) -> None:
        for _ in range(3):
            await store.log_operation(OperationLogEntry(spreadsheet_id="sheet-1", operation_type="write"))

        assert len(await store.list_operations("sheet-1", limit=2)) == 2
