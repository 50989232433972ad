"""Integration tests for FastAPI API endpoints using TestClient.

The app is assembled by hand: real SQLite store, ingestion, retrieval,
chat and verification services, with the LLM, embeddings, spreadsheet
and verification backends replaced by in-memory fakes.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.middleware import ErrorHandlingMiddleware
from src.api.routes import router as api_router
from src.config.settings import Settings
from src.interfaces.verification_provider import IEmailVerifier, IPhoneVerifier
from src.models.conversation import Client
from src.models.verification import BackendStatus, VerificationResult
from src.providers.extraction.file_text_extractor import FileTextExtractor
from src.providers.sources.google_source_fetcher import GoogleSourceFetcher
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.services.backend_process_manager import BackendProcessManager
from src.services.chat_context import ChatContextAssembler
from src.services.chat_service import ChatService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_analyzer import DocumentAnalyzer
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.source_sync_service import SourceSyncService
from src.services.retrieval_service import RetrievalService
from src.services.sheet_tools import SheetToolExecutor
from src.services.tool_orchestrator import ToolCallOrchestrator
from src.services.verification_stream import VerificationStreamController
from tests.fakes import FakeEmbeddingProvider, FakeLLM, InMemoryTabularProvider

ACME_TEXT = "Acme Corp had $1.2M in revenue. Growth was strong."
SHEET_URL = "https://docs.google.com/spreadsheets/d/sheet-1/edit"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _email_verifier() -> MagicMock:
    verifier = MagicMock(spec=IEmailVerifier)
    verifier.verify = AsyncMock(
        return_value=VerificationResult(value="ann@example.com", status="✅ Safe", status_code="safe")
    )
    verifier.check_available = AsyncMock(return_value=BackendStatus(available=True))
    return verifier


def _phone_verifier() -> MagicMock:
    verifier = MagicMock(spec=IPhoneVerifier)
    verifier.verify = AsyncMock(
        return_value=VerificationResult(value="555", status="✅ Valid (MOBILE)", status_code="valid")
    )
    verifier.check_available = AsyncMock(
        return_value=BackendStatus(available=False, error="Phone validation backend not running.")
    )
    return verifier


def _backend_manager(status: BackendStatus) -> MagicMock:
    manager = MagicMock(spec=BackendProcessManager)
    manager.status = AsyncMock(return_value=status)
    return manager


def _create_test_app(tmp_path: Path) -> tuple[FastAPI, InMemoryTabularProvider]:
    """Create a FastAPI app whose state is built from fakes and a temp database."""
    settings = Settings(
        _env_file=None,
        database_path=str(tmp_path / "knowledge.db"),
        upload_dir=str(tmp_path / "uploads"),
        max_upload_bytes=1024,
    )
    store = SQLiteDocumentStore(settings.database_path)

    async def _prepare() -> None:
        await store.initialize()
        await store.create_client(Client(id="client-1", name="Acme Corp"))

    asyncio.run(_prepare())

    llm = FakeLLM()
    embedder = FakeEmbeddingProvider()
    tabular = InMemoryTabularProvider()
    tabular.seed_tab("Sheet1", [["Name", "Email"], ["Ann", "ann@example.com"]])

    ingestion = IngestionService(
        store=store,
        extractor=FileTextExtractor(),
        analyzer=DocumentAnalyzer(llm),
        embedder=embedder,
        chunker=TextChunker(1000, 200),
    )
    retrieval = RetrievalService(store, embedder)
    email_verifier = _email_verifier()
    phone_verifier = _phone_verifier()

    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(api_router)

    app.state.settings = settings
    app.state.store = store
    app.state.ingestion = ingestion
    app.state.tabular = tabular
    app.state.source_sync = SourceSyncService(
        store=store,
        fetcher=GoogleSourceFetcher(tabular=tabular),
        ingestion=ingestion,
        upload_dir=settings.upload_dir,
        max_file_bytes=settings.max_upload_bytes,
    )
    app.state.retrieval = retrieval
    app.state.chat_service = ChatService(
        store=store,
        retrieval=retrieval,
        assembler=ChatContextAssembler(),
        llm=llm,
        orchestrator=ToolCallOrchestrator(llm, SheetToolExecutor(tabular), store),
    )
    app.state.email_verifier = email_verifier
    app.state.phone_verifier = phone_verifier
    app.state.numverify_verifier = _phone_verifier()
    app.state.verification_stream = VerificationStreamController(
        tabular=tabular,
        email_verifier=email_verifier,
        phone_verifier=phone_verifier,
        numverify_verifier=app.state.numverify_verifier,
        store=store,
        sleep=AsyncMock(),
    )
    app.state.backend_managers = {
        "email": _backend_manager(BackendStatus(available=True)),
        "phone": _backend_manager(BackendStatus(available=False, error="not running")),
    }
    app.state.provider_registry = {"llm": True, "llm_name": "fake-llm", "embedding": True}
    return app, tabular


@pytest.fixture()
def app_and_tabular(tmp_path: Path) -> tuple[FastAPI, InMemoryTabularProvider]:
    return _create_test_app(tmp_path)


@pytest.fixture()
def client(app_and_tabular: tuple[FastAPI, InMemoryTabularProvider]) -> TestClient:
    return TestClient(app_and_tabular[0])


def _upload_acme(client: TestClient) -> dict:
    response = client.post(
        "/api/v1/documents/client-1/upload",
        files={"file": ("acme.txt", ACME_TEXT.encode(), "text/plain")},
    )
    assert response.status_code == 201
    return response.json()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_healthy_with_llm_and_embeddings(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["providers"]["llm_name"] == "fake-llm"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestUpload:
    def test_upload_is_processed_in_background(self, client: TestClient) -> None:
        body = _upload_acme(client)

        assert body["document"]["status"] == "pending"
        assert body["document"]["file_name"] == "acme.txt"

        listing = client.get("/api/v1/documents/client-1").json()
        assert listing["total"] == 1
        document = listing["documents"][0]
        assert document["status"] == "processed"
        assert document["processed"] is True
        assert document["chunk_count"] == 1
        assert "embedding" not in document

    def test_unsupported_type(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/client-1/upload",
            files={"file": ("run.exe", b"MZ", "application/x-msdownload")},
        )

        assert response.status_code == 415
        assert "File type not supported" in response.json()["detail"]

    def test_too_large(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/client-1/upload",
            files={"file": ("big.txt", b"x" * 2048, "text/plain")},
        )

        assert response.status_code == 413

    def test_unknown_client(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/ghost/upload",
            files={"file": ("acme.txt", ACME_TEXT.encode(), "text/plain")},
        )

        assert response.status_code == 404


class TestDocumentDetail:
    def test_chunks_and_delete(self, client: TestClient) -> None:
        document_id = _upload_acme(client)["document"]["id"]

        chunks = client.get(f"/api/v1/documents/client-1/chunks/{document_id}").json()
        assert chunks["total"] == 1
        assert chunks["chunks"][0]["content"] == ACME_TEXT

        assert client.delete(f"/api/v1/documents/{document_id}").json() == {
            "id": document_id,
            "deleted": True,
        }
        assert client.get(f"/api/v1/documents/detail/{document_id}").status_code == 404
        assert client.delete(f"/api/v1/documents/{document_id}").status_code == 404


class TestSearch:
    def test_relevant_chunk_is_returned(self, client: TestClient) -> None:
        document_id = _upload_acme(client)["document"]["id"]

        response = client.post(
            "/api/v1/documents/search/client-1", json={"query": "what was Acme's revenue"}
        )

        assert response.status_code == 200
        body = response.json()
        assert [hit["document"]["id"] for hit in body["documents"]] == [document_id]
        assert body["chunks"][0]["chunk"]["content"] == ACME_TEXT
        assert body["chunks"][0]["similarity_score"] > 0.3

    def test_blank_query_is_rejected(self, client: TestClient) -> None:
        response = client.post("/api/v1/documents/search/client-1", json={"query": ""})

        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Chat / agent
# ---------------------------------------------------------------------------


class TestChat:
    def test_blank_message(self, client: TestClient) -> None:
        response = client.post("/api/v1/chat/client-1", data={"message": "   "})

        assert response.status_code == 400
        assert response.json()["detail"] == "Message is required"

    def test_unknown_client(self, client: TestClient) -> None:
        response = client.post("/api/v1/chat/ghost", data={"message": "hello"})

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_reply_and_history(self, client: TestClient) -> None:
        _upload_acme(client)

        response = client.post("/api/v1/chat/client-1", data={"message": "what was Acme's revenue"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"]["content"] == "Answer."
        assert body["route"] == "rag"
        assert body["images_processed"] == {"uploaded": 0, "fromSources": 0}

        history = client.get("/api/v1/chat/client-1").json()["messages"]
        assert [turn["role"] for turn in history] == ["user", "assistant"]

        assert client.delete("/api/v1/chat/client-1").json() == {"deleted": 2}

    def test_non_image_attachment(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/chat/client-1",
            data={"message": "look"},
            files={"images": ("notes.txt", b"hi", "text/plain")},
        )

        assert response.status_code == 415


class TestAgentQuery:
    def test_rag_answer_without_sheets(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/agent/query", json={"prompt": "hello", "client_id": "client-1"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Answer."
        assert body["client"] == {"id": "client-1", "name": "Acme Corp"}
        assert body["context"]["toolsUsed"] is False
        assert body["context"]["sheetsAvailable"] == 0

    def test_unknown_client(self, client: TestClient) -> None:
        response = client.post("/api/v1/agent/query", json={"prompt": "hello", "client_id": "ghost"})

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------


class TestSheets:
    def test_invalid_url(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/sheets/connect",
            json={"client_id": "client-1", "sheet_url": "https://example.com/not-a-sheet"},
        )

        assert response.status_code == 400

    def test_connect_list_disconnect(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/sheets/connect", json={"client_id": "client-1", "sheet_url": SHEET_URL}
        )

        assert response.status_code == 201
        assert response.json()["name"] == "Leads"
        assert [tab["title"] for tab in response.json()["sheet_tabs"]] == ["Sheet1"]

        sheets = client.get("/api/v1/sheets/client-1").json()["sheets"]
        assert [sheet["spreadsheet_id"] for sheet in sheets] == ["sheet-1"]

        operations = client.get("/api/v1/sheets/client-1/sheet-1/operations")
        assert operations.json() == {"spreadsheet_id": "sheet-1", "operations": []}

        assert client.delete("/api/v1/sheets/client-1/sheet-1").status_code == 200
        assert client.get("/api/v1/sheets/client-1/sheet-1/operations").status_code == 404


# ---------------------------------------------------------------------------
# Leads verification
# ---------------------------------------------------------------------------


class TestLeads:
    def test_status(self, client: TestClient) -> None:
        body = client.get("/api/v1/leads/status").json()

        assert body["email"]["available"] is True
        assert body["phone"]["available"] is False

    def test_unknown_backend(self, client: TestClient) -> None:
        response = client.post("/api/v1/leads/backends/fax/start")

        assert response.status_code == 404

    def test_verify_email(self, client: TestClient) -> None:
        response = client.post("/api/v1/leads/verify-email", json={"email": " ann@example.com "})

        assert response.json()["result"]["status"] == "✅ Safe"

    def test_preview(self, client: TestClient) -> None:
        body = client.get("/api/v1/leads/sheet-1/preview").json()

        assert body["sheet_name"] == "Sheet1"
        assert body["total_rows"] == 1
        assert body["columns"][1]["header"] == "Email"
        assert body["columns"][1]["preview"] == ["ann@example.com"]

    def test_stream_without_columns_reports_error_event(self, client: TestClient) -> None:
        response = client.get("/api/v1/leads/sheet-1/verify-stream")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.text.startswith("event: error\n")
        assert "At least one of email_column or phone_column is required" in response.text

    def test_stream_verifies_email_column(
        self, app_and_tabular: tuple[FastAPI, InMemoryTabularProvider], client: TestClient
    ) -> None:
        _, tabular = app_and_tabular

        response = client.get("/api/v1/leads/sheet-1/verify-stream", params={"email_column": "B"})

        assert response.text.startswith("event: start\n")
        assert "event: email_progress\n" in response.text
        assert response.text.rstrip().split("\n\n")[-1].startswith("event: complete\n")
        assert tabular.tabs["Sheet1"][0] == ["Name", "Email", "Email Status"]
        assert tabular.cell("Sheet1", "C2") == "✅ Safe"

    def test_stream_phone_backend_down(self, client: TestClient) -> None:
        response = client.get("/api/v1/leads/sheet-1/verify-stream", params={"phone_column": "B"})

        assert response.text.startswith("event: error\n")
        assert "Phone validation backend not running." in response.text
