"""Importing and re-syncing remote knowledge sources.

Google Docs and Sheets are imported by URL, remembered with their Google id
and a SHA-256 hash of the fetched text, and can later be refreshed:

- :meth:`SourceSyncService.sync_document` forces a refresh of one document.
- :meth:`SourceSyncService.sync_if_changed` re-fetches, compares hashes and
  only rebuilds chunks when the content actually changed.
- :meth:`SourceSyncService.sync_all` runs the change check over every Google
  source a client owns.

Web URLs are downloaded once into the upload directory and then handled like
regular uploads by :class:`IngestionService`.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from src.models.document import (
    ALLOWED_MIME_TYPES,
    GOOGLE_DOC_TYPE,
    GOOGLE_SHEET_TYPE,
    Document,
    DocumentStatus,
    RemoteContent,
    SourceType,
)
from src.models.sheet import ConnectedSheet
from src.providers.sources.google_source_fetcher import (
    GOOGLE_SLIDES_TYPE,
    extract_doc_id,
    extract_sheet_id,
    google_source_type,
)
from src.utils.errors import ExtractionError, KnowledgeAgentError, NotFoundError

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.source_fetcher import IRemoteSourceFetcher
    from src.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)


def content_hash(content: str) -> str:
    """SHA-256 hex digest of *content* (UTF-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceSyncService:
    """Imports Google/URL sources and keeps Google sources in sync.

    Parameters
    ----------
    store:
        Document store.
    fetcher:
        Remote fetcher for Google exports and plain URLs.
    ingestion:
        Pipeline used to (re)process fetched content.
    upload_dir:
        Directory where downloaded URL files are staged before extraction.
    max_file_bytes:
        Largest URL download accepted.
    """

    def __init__(
        self,
        store: IDocumentStore,
        fetcher: IRemoteSourceFetcher,
        ingestion: IngestionService,
        upload_dir: str | Path = "data/uploads",
        max_file_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._ingestion = ingestion
        self._upload_dir = Path(upload_dir)
        self._max_file_bytes = max_file_bytes

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    async def import_google_source(
        self, client_id: str, url: str
    ) -> tuple[Document, RemoteContent]:
        """Fetch a Google Doc/Sheet and register it as a ``pending`` document.

        Returns the new document and the fetched content; the caller schedules
        ``IngestionService.process_text`` on it.

        Raises
        ------
        ExtractionError
            For unsupported or malformed URLs, or when the source is unreachable.
        """
        kind = google_source_type(url)
        if kind == GOOGLE_SLIDES_TYPE:
            raise ExtractionError(message="Google Slides is not supported yet")
        if kind is None:
            raise ExtractionError(
                message="Unsupported URL. Please use a Google Docs or Google Sheets URL."
            )

        remote, google_id = await self._fetch(kind, url)

        if kind == GOOGLE_SHEET_TYPE:
            await self._remember_sheet(client_id, google_id, url, remote)

        document = Document(
            id=str(uuid.uuid4()),
            client_id=client_id,
            source_type=SourceType.GOOGLE,
            file_name=remote.title,
            file_type=kind,
            file_url=url,
            file_size=len(remote.content.encode("utf-8")),
            google_doc_id=google_id,
            content_hash=content_hash(remote.content),
            last_synced=_utcnow(),
            sheet_tabs=[tab.title for tab in remote.tabs],
        )
        document = await self._store.insert_document(document)
        logger.info(
            "google_source_imported",
            client_id=client_id,
            document_id=document.id,
            file_type=kind,
            characters=len(remote.content),
        )
        return document, remote

    async def import_url(self, client_id: str, url: str) -> tuple[Document, Path]:
        """Download *url* into the upload directory as a ``pending`` document.

        Returns the document and the staged file path; the caller schedules
        ``IngestionService.process_file`` on it.
        """
        data, file_name, mime_type = await self._fetcher.fetch_url(url)
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ExtractionError(message=f"File type not supported: {mime_type}")
        if len(data) > self._max_file_bytes:
            raise ExtractionError(message="File exceeds the maximum allowed size")

        self._upload_dir.mkdir(parents=True, exist_ok=True)
        staged = self._upload_dir / f"{uuid.uuid4().hex}-{Path(file_name).name}"
        staged.write_bytes(data)

        document = Document(
            id=str(uuid.uuid4()),
            client_id=client_id,
            source_type=SourceType.URL,
            file_name=file_name,
            file_type=mime_type,
            file_url=url,
            file_size=len(data),
        )
        document = await self._store.insert_document(document)
        logger.info("url_source_imported", client_id=client_id, document_id=document.id, mime_type=mime_type)
        return document, staged

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_document(self, document_id: str) -> tuple[Document, RemoteContent]:
        """Force a refresh: re-fetch, drop old chunks and reset to ``pending``.

        Returns the updated document and the fetched content so the caller
        can schedule reprocessing.

        Raises
        ------
        NotFoundError
            If the document does not exist.
        ExtractionError
            If the document is not a Google source or cannot be fetched.
        """
        document = await self._require_google_document(document_id)
        remote = await self._fetch_for(document)

        await self._store.delete_chunks(document.id)
        updated = await self._mark_refreshed(document, remote)
        logger.info("google_source_resynced", document_id=document.id)
        return updated, remote

    async def sync_if_changed(self, document: Document) -> bool:
        """Rebuild *document* only if its remote content hash changed.

        Returns ``True`` when the document was reprocessed.  An unchanged hash
        leaves chunks and status untouched.
        """
        remote = await self._fetch_for(document)
        new_hash = content_hash(remote.content)
        if new_hash == document.content_hash:
            logger.debug("google_source_unchanged", document_id=document.id)
            return False

        await self._store.delete_chunks(document.id)
        updated = await self._mark_refreshed(document, remote)
        await self._ingestion.process_text(
            updated.id, remote.content, remote.title, updated.file_type
        )
        logger.info("google_source_changed", document_id=document.id)
        return True

    async def sync_all(self, client_id: str) -> dict[str, Any]:
        """Check every Google source of *client_id* for changes.

        Returns ``{"checked", "synced", "unchanged", "errors"}`` where each
        error is ``{"docId", "error"}``.  One failing source does not stop
        the others.
        """
        documents = await self._store.list_documents(client_id, source_type=SourceType.GOOGLE)
        google_docs = [d for d in documents if d.google_doc_id]

        synced = 0
        unchanged = 0
        errors: list[dict[str, str]] = []
        for document in google_docs:
            try:
                if await self.sync_if_changed(document):
                    synced += 1
                else:
                    unchanged += 1
            except KnowledgeAgentError as exc:
                logger.warning("google_source_sync_failed", document_id=document.id, error=exc.message)
                errors.append({"docId": document.id, "error": exc.message})

        logger.info(
            "google_sources_synced",
            client_id=client_id,
            checked=len(google_docs),
            synced=synced,
            unchanged=unchanged,
            errors=len(errors),
        )
        return {
            "checked": len(google_docs),
            "synced": synced,
            "unchanged": unchanged,
            "errors": errors,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch(self, kind: str, url: str) -> tuple[RemoteContent, str]:
        if kind == GOOGLE_DOC_TYPE:
            doc_id = extract_doc_id(url)
            if not doc_id:
                raise ExtractionError(message="Invalid Google Docs URL")
            return await self._fetcher.fetch_google_doc(doc_id), doc_id

        sheet_id = extract_sheet_id(url)
        if not sheet_id:
            raise ExtractionError(message="Invalid Google Sheets URL")
        return await self._fetcher.fetch_google_sheet(sheet_id), sheet_id

    async def _fetch_for(self, document: Document) -> RemoteContent:
        if not document.google_doc_id:
            raise ExtractionError(message="Only Google Docs/Sheets can be synced")
        if document.file_type == GOOGLE_SHEET_TYPE:
            remote = await self._fetcher.fetch_google_sheet(document.google_doc_id)
            await self._remember_sheet(
                document.client_id, document.google_doc_id, document.file_url or "", remote
            )
            return remote
        return await self._fetcher.fetch_google_doc(document.google_doc_id)

    async def _require_google_document(self, document_id: str) -> Document:
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(message="Document not found")
        if document.source_type != SourceType.GOOGLE or not document.google_doc_id:
            raise ExtractionError(message="Only Google Docs/Sheets can be synced")
        return document

    async def _mark_refreshed(self, document: Document, remote: RemoteContent) -> Document:
        fields: dict[str, Any] = {
            "file_name": remote.title,
            "last_synced": _utcnow(),
            "content_hash": content_hash(remote.content),
            "status": DocumentStatus.PENDING,
            "chunk_count": 0,
        }
        if document.file_type == GOOGLE_SHEET_TYPE:
            fields["sheet_tabs"] = [tab.title for tab in remote.tabs]
        return await self._store.update_document(document.id, **fields)

    async def _remember_sheet(
        self, client_id: str, spreadsheet_id: str, url: str, remote: RemoteContent
    ) -> None:
        await self._store.upsert_connected_sheet(
            ConnectedSheet(
                id=str(uuid.uuid4()),
                client_id=client_id,
                spreadsheet_id=spreadsheet_id,
                sheet_url=url,
                name=remote.title,
                sheet_tabs=remote.tabs,
                last_synced=_utcnow(),
            )
        )
