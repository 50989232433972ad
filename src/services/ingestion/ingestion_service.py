"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **extract -> analyze -> embed document -> chunk -> embed
chunks -> store**.

:class:`IngestionService` coordinates its collaborators (text extractor,
document analyzer, chunker, embedding provider, document store) without any
of them knowing about each other.  Both entry points follow the same flow:

    1. ITextExtractor      -- file on disk to plain text (uploads only)
    2. DocumentAnalyzer    -- LLM title/summary/tags/keywords/topic/sentiment
    3. IEmbeddingProvider  -- one document-level vector
    4. TextChunker         -- 1000-character windows with 200 overlap
    5. IEmbeddingProvider  -- one vector per chunk (failures skip the chunk)
    6. IDocumentStore      -- chunks in batches, then the document row

Every run ends with the document either ``processed`` or ``failed``; the
failure reason is kept in the summary as ``Error: <message>``.  Nothing
raised inside a run escapes it, since runs execute as background tasks.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from src.models.document import Chunk, Document, DocumentStatus, TextSpan
from src.utils.errors import EmbeddingError, ExtractionError, KnowledgeAgentError
from src.utils.logging import bind_context, clear_context

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.text_extractor import ITextExtractor
    from src.services.ingestion.chunker import TextChunker
    from src.services.ingestion.document_analyzer import DocumentAnalyzer

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Turns raw sources into processed, chunked, embedded documents.

    Parameters
    ----------
    store:
        Document store holding the ``pending`` document row to fill in.
    extractor:
        File-to-text extractor used by :meth:`process_file`.
    analyzer:
        LLM-backed document analyzer.
    embedder:
        Embedding provider for document and chunk vectors.
    chunker:
        Splits text into overlapping windows.
    min_text_length:
        Sources with fewer characters fail with "Insufficient text content extracted".
    chunk_insert_batch:
        Number of chunk rows written per store call.
    """

    def __init__(
        self,
        store: IDocumentStore,
        extractor: ITextExtractor,
        analyzer: DocumentAnalyzer,
        embedder: IEmbeddingProvider,
        chunker: TextChunker,
        min_text_length: int = 10,
        chunk_insert_batch: int = 50,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._analyzer = analyzer
        self._embedder = embedder
        self._chunker = chunker
        self._min_text_length = min_text_length
        self._chunk_insert_batch = max(chunk_insert_batch, 1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_file(
        self,
        document_id: str,
        file_path: str | Path,
        file_name: str,
        mime_type: str,
    ) -> Document | None:
        """Extract text from an uploaded file and run the pipeline.

        The file is deleted afterwards on every path.  Returns the final
        document row, or ``None`` if the row vanished mid-run.
        """
        path = Path(file_path)
        bind_context(document_id=document_id)
        try:
            text = await self._extractor.extract(path, mime_type)
            return await self._run(document_id, text, file_name, mime_type, title=file_name)
        except Exception as exc:  # noqa: BLE001 -- background task boundary
            return await self._mark_failed(document_id, exc)
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("temp_file_cleanup_failed", path=str(path), error=str(exc))
            clear_context()

    async def process_text(
        self,
        document_id: str,
        content: str,
        title: str,
        file_type: str,
    ) -> Document | None:
        """Run the pipeline on already-fetched text (Google Docs/Sheets)."""
        bind_context(document_id=document_id)
        try:
            return await self._run(document_id, content, title, file_type, title=title)
        except Exception as exc:  # noqa: BLE001 -- background task boundary
            return await self._mark_failed(document_id, exc)
        finally:
            clear_context()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        document_id: str,
        text: str,
        file_name: str,
        file_type: str,
        title: str | None,
    ) -> Document:
        if not text or len(text) < self._min_text_length:
            raise ExtractionError(message="Insufficient text content extracted")

        logger.info("ingestion_started", file_name=file_name, characters=len(text))

        analysis = await self._analyzer.analyze(text, file_name, file_type)
        document_embedding = await self._embedder.embed_single(analysis.embedding_text())

        spans = self._chunker.chunk(text)
        stored = await self._store_chunks(document_id, spans)

        document = await self._store.update_document(
            document_id,
            title=title or analysis.title,
            summary=analysis.summary,
            tags=analysis.tags,
            keywords=analysis.keywords,
            topic=analysis.topic,
            sentiment=analysis.sentiment,
            sentiment_score=analysis.sentiment_score,
            embedding=document_embedding,
            chunk_count=len(spans),
            status=DocumentStatus.PROCESSED,
        )
        logger.info(
            "ingestion_completed",
            file_name=file_name,
            chunks=len(spans),
            chunks_stored=stored,
        )
        return document

    async def _store_chunks(self, document_id: str, spans: list[TextSpan]) -> int:
        """Embed and persist chunks batch by batch; return the number stored."""
        stored = 0
        for batch_start in range(0, len(spans), self._chunk_insert_batch):
            batch = spans[batch_start : batch_start + self._chunk_insert_batch]
            records: list[Chunk] = []
            for offset, span in enumerate(batch):
                chunk_index = batch_start + offset
                try:
                    embedding = await self._embedder.embed_single(span.text)
                except EmbeddingError as exc:
                    logger.warning(
                        "chunk_embedding_failed",
                        chunk_index=chunk_index,
                        error=str(exc),
                    )
                    continue
                records.append(
                    Chunk(
                        id=str(uuid.uuid4()),
                        document_id=document_id,
                        chunk_index=chunk_index,
                        start_index=span.start_index,
                        end_index=span.end_index,
                        content=span.text,
                        embedding=embedding,
                    )
                )
            if records:
                stored += await self._store.insert_chunks(records)
        return stored

    async def _mark_failed(self, document_id: str, exc: BaseException) -> Document | None:
        message = exc.message if isinstance(exc, KnowledgeAgentError) else str(exc)
        logger.error(
            "ingestion_failed",
            error_type=type(exc).__name__,
            error=message,
        )
        try:
            return await self._store.update_document(
                document_id,
                status=DocumentStatus.FAILED,
                summary=f"Error: {message}",
            )
        except Exception as store_exc:  # noqa: BLE001
            logger.error("ingestion_failure_not_recorded", error=str(store_exc))
            return None
