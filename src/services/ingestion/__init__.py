"""Document ingestion for the client knowledge base.

Pipeline stages overview:

1. **Extract** (``ITextExtractor``) -- Format-specific readers turn an
   uploaded or downloaded file (PDF, Word, Excel, CSV, text) into plain
   text.  Google Docs/Sheets arrive as text already via the source fetcher.

2. **Analyze** (document_analyzer.py / DocumentAnalyzer) -- One LLM call
   produces title, summary, tags, keywords, topic and sentiment.

3. **Embed** (via IEmbeddingProvider) -- A document-level vector over the
   analysis text, then one vector per chunk.

4. **Chunk** (chunker.py / TextChunker) -- Overlapping character windows
   that prefer sentence, then word boundaries.

5. **Store** (via IDocumentStore) -- Chunks are inserted in batches and
   the document is marked ``processed`` (or ``failed`` with the error).

IngestionService runs the stages; SourceSyncService registers URL and
Google sources and re-syncs Google sources whose content hash changed.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_analyzer import DocumentAnalyzer
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.source_sync_service import SourceSyncService

__all__ = [
    "DocumentAnalyzer",
    "IngestionService",
    "SourceSyncService",
    "TextChunker",
]
