"""Client knowledge agent FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging before the app is created.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.extraction.file_text_extractor import FileTextExtractor
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.sheets.google_sheets_provider import GoogleSheetsProvider
from src.providers.sources.google_source_fetcher import GoogleSourceFetcher
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.providers.verification.phone_verifiers import (
    LocalPhoneVerifier,
    NumVerifyPhoneVerifier,
)
from src.providers.verification.reacher_email_verifier import ReacherEmailVerifier
from src.services.backend_process_manager import (
    DockerBackendManager,
    ProcessBackendManager,
)
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
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# LLM provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the LLM provider.

    ``LLM_PROVIDER`` wins when it names a configured vendor; otherwise the
    priority order is Anthropic -> OpenAI.  With no key at all an OpenAI
    provider is still returned so the app starts; it reports
    ``is_available() == False`` and its calls fail with ``LLMError``.
    """
    available = app_settings.get_available_llm_providers()
    preferred = app_settings.llm_provider.strip().lower()
    if preferred in available:
        choice = preferred
    elif available:
        choice = available[0]
    else:
        _logger.warning("llm_provider_not_configured")
        choice = "openai"

    if choice == "anthropic":
        return AnthropicLLMProvider(settings=app_settings)
    return OpenAILLMProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    cfg = app_config or config
    chunking = cfg["chunking"]
    retrieval_cfg = cfg["retrieval"]
    ingestion_cfg = cfg["ingestion"]
    chat_cfg = cfg["chat"]
    verification_cfg = cfg["verification"]

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0)
    store = SQLiteDocumentStore(db_path=app_settings.database_path)

    # -- LLM + embeddings --
    llm = _build_llm_provider(app_settings)
    embedder = OpenAIEmbeddingProvider(settings=app_settings)

    # -- Ingestion --
    ingestion = IngestionService(
        store=store,
        extractor=FileTextExtractor(),
        analyzer=DocumentAnalyzer(llm, char_limit=ingestion_cfg["analysis_char_limit"]),
        embedder=embedder,
        chunker=TextChunker(chunk_size=chunking["size"], overlap=chunking["overlap"]),
        min_text_length=ingestion_cfg["min_text_length"],
        chunk_insert_batch=ingestion_cfg["chunk_insert_batch"],
    )

    # -- Google sources + sheets --
    tabular = GoogleSheetsProvider(app_settings, http_client)
    fetcher = GoogleSourceFetcher(
        tabular=tabular,
        http_client=http_client,
        use_sheets_api=bool(app_settings.google_sheets_access_token),
    )
    source_sync = SourceSyncService(
        store=store,
        fetcher=fetcher,
        ingestion=ingestion,
        upload_dir=app_settings.upload_dir,
        max_file_bytes=app_settings.max_upload_bytes,
    )

    # -- Retrieval + chat --
    retrieval = RetrievalService(
        store=store,
        embedder=embedder,
        chunk_threshold=retrieval_cfg["chunk_min_similarity"],
        max_chunks=retrieval_cfg["chunk_limit"],
    )
    orchestrator = ToolCallOrchestrator(
        llm=llm,
        executor=SheetToolExecutor(tabular),
        store=store,
        max_iterations=chat_cfg["max_tool_iterations"],
    )
    chat_service = ChatService(
        store=store,
        retrieval=retrieval,
        assembler=ChatContextAssembler(),
        llm=llm,
        orchestrator=orchestrator,
        http_client=http_client,
        history_limit=chat_cfg["history_limit"],
        agent_history_limit=chat_cfg["agent_history_limit"],
        search_limit=retrieval_cfg["document_limit"],
        source_threshold=retrieval_cfg["source_min_similarity"],
        temperature=chat_cfg["temperature"],
        max_tokens=chat_cfg["max_tokens"],
    )

    # -- Leads verification --
    email_verifier = ReacherEmailVerifier(app_settings, http_client)
    phone_verifier = LocalPhoneVerifier(app_settings, http_client)
    numverify_verifier = NumVerifyPhoneVerifier(app_settings, http_client)
    verification_stream = VerificationStreamController(
        tabular=tabular,
        email_verifier=email_verifier,
        phone_verifier=phone_verifier,
        numverify_verifier=numverify_verifier,
        store=store,
        email_delay=verification_cfg["email_delay_seconds"],
        phone_delay=verification_cfg["phone_delay_seconds"],
        numverify_delay=verification_cfg["numverify_delay_seconds"],
        quota_wait_seconds=verification_cfg["quota_wait_seconds"],
        max_write_attempts=verification_cfg["quota_max_retries"],
    )
    backend_managers = {
        "email": DockerBackendManager(
            "email",
            email_verifier.check_available,
            container=app_settings.email_backend_container,
            image=app_settings.email_backend_image,
            port=app_settings.email_backend_port,
        ),
        "phone": ProcessBackendManager(
            "phone",
            phone_verifier.check_available,
            command=app_settings.phone_backend_command,
            cwd=app_settings.phone_backend_cwd or None,
        ),
    }

    provider_registry: dict[str, Any] = {
        "llm": llm.is_available(),
        "llm_name": llm.get_provider_name(),
        "embedding": embedder.is_available(),
        "sheets": bool(app_settings.google_sheets_access_token),
        "numverify": bool(app_settings.numverify_api_key),
    }

    return {
        "settings": app_settings,
        "http_client": http_client,
        "store": store,
        "primary_llm": llm,
        "embedder": embedder,
        "ingestion": ingestion,
        "tabular": tabular,
        "source_sync": source_sync,
        "retrieval": retrieval,
        "chat_service": chat_service,
        "email_verifier": email_verifier,
        "phone_verifier": phone_verifier,
        "numverify_verifier": numverify_verifier,
        "verification_stream": verification_stream,
        "backend_managers": backend_managers,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    # Creates tables on first run
    await components["store"].initialize()

    _logger.info(
        "app_startup",
        version="0.1.0",
        environment=settings.app_env,
        primary_llm=components["provider_registry"]["llm_name"],
        embeddings=components["provider_registry"]["embedding"],
    )

    yield

    # -- Shutdown: close shared httpx client --
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Client Knowledge Agent API",
        version="0.1.0",
        description=(
            "Per-client knowledge base over uploaded files, web URLs and Google "
            "Docs/Sheets, with retrieval-augmented chat, a spreadsheet tool "
            "agent, and streaming email/phone verification for lead sheets."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
