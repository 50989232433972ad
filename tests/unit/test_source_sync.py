"""Unit tests for Google/URL source import and change-detecting sync."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from src.interfaces.source_fetcher import IRemoteSourceFetcher
from src.models.document import (
    GOOGLE_DOC_TYPE,
    GOOGLE_SHEET_TYPE,
    Document,
    DocumentStatus,
    RemoteContent,
    SourceType,
)
from src.models.sheet import SheetTab
from src.providers.sources.google_source_fetcher import (
    GOOGLE_SLIDES_TYPE,
    GoogleSourceFetcher,
    extract_doc_id,
    extract_sheet_id,
    google_source_type,
)
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.services.ingestion.source_sync_service import SourceSyncService, content_hash
from src.utils.errors import ExtractionError, NotFoundError
from tests.fakes import InMemoryTabularProvider

DOC_URL = "https://docs.google.com/document/d/doc-abc_123/edit"
SHEET_URL = "https://docs.google.com/spreadsheets/d/sheet-xyz/edit#gid=0"


# ── Fixtures ──────────────────────────────────────────────────────────


class FakeFetcher(IRemoteSourceFetcher):
    """Serves canned Google content; ``broken`` ids raise ExtractionError."""

    def __init__(self) -> None:
        self.docs: dict[str, RemoteContent] = {}
        self.sheets: dict[str, RemoteContent] = {}
        self.urls: dict[str, tuple[bytes, str, str]] = {}
        self.broken: set[str] = set()

    async def fetch_google_doc(self, doc_id: str) -> RemoteContent:
        if doc_id in self.broken or doc_id not in self.docs:
            raise ExtractionError(message="Document not found.")
        return self.docs[doc_id]

    async def fetch_google_sheet(self, spreadsheet_id: str) -> RemoteContent:
        if spreadsheet_id in self.broken or spreadsheet_id not in self.sheets:
            raise ExtractionError(message="Spreadsheet not found.")
        return self.sheets[spreadsheet_id]

    async def fetch_url(self, url: str) -> tuple[bytes, str, str]:
        return self.urls[url]


@pytest.fixture()
def fetcher() -> FakeFetcher:
    fake = FakeFetcher()
    fake.docs["doc-abc_123"] = RemoteContent(title="Pricing Notes", content="Widgets cost $4.")
    fake.sheets["sheet-xyz"] = RemoteContent(
        title="Pipeline",
        content="\n=== TAB: Deals ===\nAcme\t5000\n",
        tabs=[SheetTab(sheet_id=0, title="Deals", index=0)],
    )
    return fake


@pytest.fixture()
def ingestion() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def service(
    store: SQLiteDocumentStore, fetcher: FakeFetcher, ingestion: AsyncMock, tmp_path: Path
) -> SourceSyncService:
    return SourceSyncService(
        store=store,
        fetcher=fetcher,
        ingestion=ingestion,
        upload_dir=tmp_path / "uploads",
        max_file_bytes=1024,
    )


# ── URL helpers ───────────────────────────────────────────────────────


class TestUrlHelpers:
    def test_classifies_google_urls(self) -> None:
        assert google_source_type(DOC_URL) == GOOGLE_DOC_TYPE
        assert google_source_type(SHEET_URL) == GOOGLE_SHEET_TYPE
        assert google_source_type("https://docs.google.com/presentation/d/x/edit") == GOOGLE_SLIDES_TYPE
        assert google_source_type("https://example.com/report.pdf") is None

    def test_extracts_ids(self) -> None:
        assert extract_doc_id(DOC_URL) == "doc-abc_123"
        assert extract_sheet_id(SHEET_URL) == "sheet-xyz"
        assert extract_sheet_id("https://docs.google.com/spreadsheets/") is None


# ── Imports ───────────────────────────────────────────────────────────


class TestImportGoogleSource:
    @pytest.mark.asyncio()
    async def test_doc_is_registered_pending(self, service: SourceSyncService) -> None:
        document, remote = await service.import_google_source("client-1", DOC_URL)

        assert document.status == DocumentStatus.PENDING
        assert document.source_type == SourceType.GOOGLE
        assert document.file_type == GOOGLE_DOC_TYPE
        assert document.google_doc_id == "doc-abc_123"
        assert document.file_name == "Pricing Notes"
        assert document.content_hash == content_hash("Widgets cost $4.")
        assert remote.content == "Widgets cost $4."

    @pytest.mark.asyncio()
    async def test_sheet_is_remembered_as_connected(
        self, service: SourceSyncService, store: SQLiteDocumentStore
    ) -> None:
        document, _ = await service.import_google_source("client-1", SHEET_URL)

        assert document.sheet_tabs == ["Deals"]
        sheets = await store.list_connected_sheets("client-1")
        assert [s.spreadsheet_id for s in sheets] == ["sheet-xyz"]
        assert sheets[0].tab_titles == ["Deals"]

    @pytest.mark.asyncio()
    async def test_slides_are_rejected(self, service: SourceSyncService) -> None:
        with pytest.raises(ExtractionError, match="Slides"):
            await service.import_google_source(
                "client-1", "https://docs.google.com/presentation/d/abc/edit"
            )

    @pytest.mark.asyncio()
    async def test_non_google_url_is_rejected(self, service: SourceSyncService) -> None:
        with pytest.raises(ExtractionError, match="Unsupported URL"):
            await service.import_google_source("client-1", "https://example.com/doc")


class TestImportUrl:
    @pytest.mark.asyncio()
    async def test_download_is_staged(
        self, service: SourceSyncService, fetcher: FakeFetcher, tmp_path: Path
    ) -> None:
        fetcher.urls["https://example.com/notes.txt"] = (b"hello world notes", "notes.txt", "text/plain")

        document, staged = await service.import_url("client-1", "https://example.com/notes.txt")

        assert document.source_type == SourceType.URL
        assert document.file_size == len(b"hello world notes")
        assert staged.parent == tmp_path / "uploads"
        assert staged.read_bytes() == b"hello world notes"

    @pytest.mark.asyncio()
    async def test_disallowed_mime_type(self, service: SourceSyncService, fetcher: FakeFetcher) -> None:
        fetcher.urls["https://example.com"] = (b"<html></html>", "index", "text/html")

        with pytest.raises(ExtractionError, match="File type not supported: text/html"):
            await service.import_url("client-1", "https://example.com")

    @pytest.mark.asyncio()
    async def test_oversized_download(self, service: SourceSyncService, fetcher: FakeFetcher) -> None:
        fetcher.urls["https://example.com/big.txt"] = (b"x" * 2048, "big.txt", "text/plain")

        with pytest.raises(ExtractionError, match="maximum allowed size"):
            await service.import_url("client-1", "https://example.com/big.txt")


# ── Sync ──────────────────────────────────────────────────────────────


class TestSync:
    @pytest.mark.asyncio()
    async def test_unchanged_hash_is_a_no_op(
        self, service: SourceSyncService, ingestion: AsyncMock
    ) -> None:
        document, _ = await service.import_google_source("client-1", DOC_URL)

        changed = await service.sync_if_changed(document)

        assert changed is False
        ingestion.process_text.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_changed_content_is_reprocessed(
        self,
        service: SourceSyncService,
        fetcher: FakeFetcher,
        ingestion: AsyncMock,
        store: SQLiteDocumentStore,
    ) -> None:
        document, _ = await service.import_google_source("client-1", DOC_URL)
        fetcher.docs["doc-abc_123"] = RemoteContent(title="Pricing Notes v2", content="Widgets cost $5.")

        changed = await service.sync_if_changed(document)

        assert changed is True
        ingestion.process_text.assert_awaited_once_with(
            document.id, "Widgets cost $5.", "Pricing Notes v2", GOOGLE_DOC_TYPE
        )
        refreshed = await store.get_document(document.id)
        assert refreshed is not None
        assert refreshed.content_hash == content_hash("Widgets cost $5.")
        assert refreshed.file_name == "Pricing Notes v2"

    @pytest.mark.asyncio()
    async def test_forced_sync_resets_to_pending(
        self, service: SourceSyncService, store: SQLiteDocumentStore
    ) -> None:
        document, _ = await service.import_google_source("client-1", DOC_URL)
        await store.update_document(document.id, status=DocumentStatus.PROCESSED, chunk_count=3)

        updated, remote = await service.sync_document(document.id)

        assert updated.status == DocumentStatus.PENDING
        assert updated.chunk_count == 0
        assert remote.title == "Pricing Notes"

    @pytest.mark.asyncio()
    async def test_forced_sync_of_upload_is_rejected(
        self, service: SourceSyncService, store: SQLiteDocumentStore
    ) -> None:
        await store.insert_document(Document(id="up-1", client_id="client-1", file_name="a.txt"))

        with pytest.raises(ExtractionError, match="Only Google"):
            await service.sync_document("up-1")

    @pytest.mark.asyncio()
    async def test_change_check_without_google_id_is_rejected(
        self, service: SourceSyncService, ingestion: AsyncMock
    ) -> None:
        document = Document(
            id="g-1", client_id="client-1", source_type=SourceType.GOOGLE, file_type=GOOGLE_DOC_TYPE
        )

        with pytest.raises(ExtractionError, match="Only Google"):
            await service.sync_if_changed(document)
        ingestion.process_text.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_forced_sync_of_missing_document(self, service: SourceSyncService) -> None:
        with pytest.raises(NotFoundError):
            await service.sync_document("nope")

    @pytest.mark.asyncio()
    async def test_sync_all_counts_and_collects_errors(
        self, service: SourceSyncService, fetcher: FakeFetcher
    ) -> None:
        doc, _ = await service.import_google_source("client-1", DOC_URL)
        sheet, _ = await service.import_google_source("client-1", SHEET_URL)
        fetcher.sheets["sheet-xyz"] = RemoteContent(title="Pipeline", content="changed", tabs=[])
        fetcher.broken.add("doc-abc_123")

        summary = await service.sync_all("client-1")

        assert summary["checked"] == 2
        assert summary["synced"] == 1
        assert summary["unchanged"] == 0
        assert summary["errors"] == [{"docId": doc.id, "error": "Document not found."}]


# ── Google fetcher ────────────────────────────────────────────────────


class TestGoogleSourceFetcher:
    @pytest.mark.asyncio()
    async def test_private_doc_reports_access_denied(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(403))
        async with httpx.AsyncClient(transport=transport) as client:
            fetcher = GoogleSourceFetcher(http_client=client)
            with pytest.raises(ExtractionError, match="Access denied"):
                await fetcher.fetch_google_doc("abc")

    @pytest.mark.asyncio()
    async def test_doc_title_comes_from_html_export(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("format") == "txt":
                return httpx.Response(200, text="Body text")
            return httpx.Response(200, text="<title>Board Minutes - Google Docs</title>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            remote = await GoogleSourceFetcher(http_client=client).fetch_google_doc("abc")

        assert remote.title == "Board Minutes"
        assert remote.content == "Body text"

    @pytest.mark.asyncio()
    async def test_sheet_tabs_are_rendered_via_api(self) -> None:
        tabular = InMemoryTabularProvider(spreadsheet_id="s1", title="Pipeline")
        tabular.seed_tab("Deals", [["Name", "Value"], ["Acme", 5000]])
        tabular.seed_tab("Empty")

        async with httpx.AsyncClient() as client:
            remote = await GoogleSourceFetcher(tabular=tabular, http_client=client).fetch_google_sheet("s1")

        assert remote.title == "Pipeline"
        assert "=== TAB: Deals ===\nName\tValue\nAcme\t5000\n" in remote.content
        assert "=== TAB: Empty ===\n(empty)\n" in remote.content
        assert [tab.title for tab in remote.tabs] == ["Deals", "Empty"]

    @pytest.mark.asyncio()
    async def test_url_file_name_from_content_disposition(self) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                200,
                content=b"%PDF-1.4",
                headers={
                    "content-type": "application/pdf; charset=binary",
                    "content-disposition": 'attachment; filename="q3-report.pdf"',
                },
            )
        )
        async with httpx.AsyncClient(transport=transport) as client:
            data, name, mime = await GoogleSourceFetcher(http_client=client).fetch_url(
                "https://example.com/download?id=7"
            )

        assert (data, name, mime) == (b"%PDF-1.4", "q3-report.pdf", "application/pdf")
