"""Public interface definitions for all external service providers.

Every external API or service is accessed through the abstract base
classes defined in this package.  Concrete adapters implement these
interfaces and are injected at startup by ``src/main.py``; unit tests
inject fakes instead.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    ILLMProvider           →  AnthropicLLMProvider, OpenAILLMProvider
    IEmbeddingProvider     →  OpenAIEmbeddingProvider
    IDocumentStore         →  SQLiteDocumentStore
    ITabularProvider       →  GoogleSheetsProvider
    ITextExtractor         →  FileTextExtractor
    IRemoteSourceFetcher   →  GoogleSourceFetcher
    IEmailVerifier         →  ReacherEmailVerifier
    IPhoneVerifier         →  LocalPhoneVerifier, NumVerifyPhoneVerifier
"""

from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.source_fetcher import IRemoteSourceFetcher
from src.interfaces.tabular_provider import ITabularProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.verification_provider import IEmailVerifier, IPhoneVerifier

__all__ = [
    "IDocumentStore",
    "IEmailVerifier",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IPhoneVerifier",
    "IRemoteSourceFetcher",
    "ITabularProvider",
    "ITextExtractor",
]
