"""Two-stage semantic retrieval over a client's knowledge base.

Stage 1 ranks the client's processed documents by cosine similarity of their
document-level embeddings and keeps the top ``limit`` with no score floor.
Stage 2 scores every chunk of those documents against the same query vector,
keeps chunks scoring strictly above ``chunk_threshold`` and returns the best
``max_chunks``.  The chunk list is never padded: weak matches are dropped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.models.document import ScoredChunk, ScoredDocument, SearchResult
from src.services.similarity import cosine_similarity, rank_top_k
from src.utils.errors import RetrievalError, StoreError

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)


class RetrievalService:
    """Finds the documents and chunks most relevant to a query."""

    def __init__(
        self,
        store: IDocumentStore,
        embedder: IEmbeddingProvider,
        chunk_threshold: float = 0.3,
        max_chunks: int = 8,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._chunk_threshold = chunk_threshold
        self._max_chunks = max_chunks

    async def search(
        self,
        client_id: str,
        query: str,
        limit: int = 5,
        include_chunks: bool = True,
    ) -> SearchResult:
        """Return the top documents and, optionally, their best chunks.

        Raises
        ------
        RetrievalError
            If the document store cannot be read.
        src.utils.errors.EmbeddingError
            If the query cannot be embedded.
        """
        query_vector = await self._embedder.embed_single(query)

        try:
            documents = await self._store.list_documents(client_id, processed_only=True)
        except StoreError as exc:
            raise RetrievalError(message=f"Failed to load documents: {exc.message}") from exc

        ranked_docs = rank_top_k(
            documents, lambda d: cosine_similarity(query_vector, d.embedding), limit
        )
        scored_docs = [ScoredDocument(document=d, similarity=s) for d, s in ranked_docs]

        scored_chunks: list[ScoredChunk] = []
        if include_chunks and scored_docs:
            titles = {sd.document.id: sd.document.display_title for sd in scored_docs}
            try:
                chunks = await self._store.list_chunks(list(titles))
            except StoreError as exc:
                raise RetrievalError(message=f"Failed to load chunks: {exc.message}") from exc

            ranked_chunks = rank_top_k(
                chunks, lambda c: cosine_similarity(query_vector, c.embedding)
            )
            scored_chunks = [
                ScoredChunk(chunk=c, document_title=titles.get(c.document_id, "Unknown"), similarity=s)
                for c, s in ranked_chunks
                if s > self._chunk_threshold
            ][: self._max_chunks]

        logger.info(
            "retrieval_completed",
            client_id=client_id,
            documents=len(scored_docs),
            chunks=len(scored_chunks),
        )
        return SearchResult(documents=scored_docs, chunks=scored_chunks)
