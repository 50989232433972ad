"""FastAPI API routes for the client knowledge agent.

Provides REST endpoints for document sources (upload, URL, Google Docs and
Sheets), semantic search, chat, the agent API, connected sheets and leads
verification.  Service dependencies are resolved from ``app.state`` via
FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP (Junior Developer Guide) ───────────────────────────
#
# Endpoint                                        Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/health                                  GET     Health + provider status
# /api/v1/documents/{client_id}                   GET     List a client's documents
# /api/v1/documents/detail/{id}                   GET     One document
# /api/v1/documents/{client_id}/chunks/{id}       GET     A document's chunks
# /api/v1/documents/{client_id}/upload            POST    Upload a file → ingest (bg)
# /api/v1/documents/{client_id}/url               POST    Fetch a web URL → ingest (bg)
# /api/v1/documents/{client_id}/google            POST    Import Google Doc/Sheet (bg)
# /api/v1/documents/{id}/sync                     POST    Force re-sync a Google source
# /api/v1/documents/{client_id}/sync-all          POST    Re-sync changed Google sources
# /api/v1/documents/search/{client_id}            POST    Semantic search
# /api/v1/documents/{id}                          DELETE  Delete document + chunks
# /api/v1/chat/{client_id}                        GET     Chat history
# /api/v1/chat/{client_id}                        POST    Send a message (+ images)
# /api/v1/chat/{client_id}                        DELETE  Clear chat history
# /api/v1/agent/query                             POST    Programmatic agent query
# /api/v1/sheets/connect                          POST    Connect a spreadsheet
# /api/v1/sheets/{client_id}                      GET     List connected sheets
# /api/v1/sheets/{client_id}/{sid}                DELETE  Disconnect a sheet
# /api/v1/sheets/{client_id}/{sid}/operations     GET     Operations log
# /api/v1/leads/status                            GET     Verification backend status
# /api/v1/leads/backends/{name}/start|stop        POST    Start/stop a backend
# /api/v1/leads/verify-email                      POST    Verify one email
# /api/v1/leads/verify-phone                      POST    Verify one phone number
# /api/v1/leads/{sid}/preview                     GET     Column picker preview
# /api/v1/leads/{sid}/verify-stream               GET     Verification run (SSE)
#
# DEPENDENCY INJECTION PATTERN:
# Each route function declares its dependencies as type-annotated params.
# FastAPI resolves these via Depends() which calls helper functions that
# read from app.state (populated at startup in main.py's _build_all).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Annotated, Any

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from src.api.schemas import (
    AgentQueryRequest,
    AgentQueryResponse,
    BackendActionResponse,
    BackendsStatusResponse,
    ChatHistoryResponse,
    ChatResponse,
    ChunkListResponse,
    ChunkOut,
    ChunkHitOut,
    ClearHistoryResponse,
    ConnectedSheetListResponse,
    DeletedResponse,
    DocumentAcceptedResponse,
    DocumentListResponse,
    DocumentOut,
    ErrorResponse,
    HealthResponse,
    OperationListResponse,
    ScoredDocumentOut,
    SearchRequest,
    SearchResponse,
    SheetConnectRequest,
    SheetPreviewResponse,
    SourceUrlRequest,
    SyncAllResponse,
    VerificationResponse,
    VerifyEmailRequest,
    VerifyPhoneRequest,
)
from src.api.sse import sse_response
from src.config.settings import Settings
from src.interfaces.document_store import IDocumentStore
from src.interfaces.tabular_provider import ITabularProvider
from src.interfaces.verification_provider import IEmailVerifier, IPhoneVerifier
from src.models.conversation import ImageAttachment
from src.models.document import ALLOWED_MIME_TYPES, Document, SourceType
from src.models.sheet import ConnectedSheet
from src.models.verification import VerificationEvent, VerificationOptions
from src.providers.sources.google_source_fetcher import extract_sheet_id
from src.services.backend_process_manager import BackendProcessManager
from src.services.chat_service import ChatService
from src.services.ingestion.ingestion_service import IngestionService
from src.services.ingestion.source_sync_service import SourceSyncService
from src.services.retrieval_service import RetrievalService
from src.services.verification_stream import VerificationStreamController, build_preview
from src.utils.columns import qualify_range
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# All routes in this file are prefixed with /api/v1.
# Example: @router.post("/agent/query") → POST /api/v1/agent/query
router = APIRouter(prefix="/api/v1")

# Chunk size for streaming uploads - read in 64 KB increments to reject
# oversized files early without buffering the entire payload into memory.
_UPLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

_MAX_CHAT_IMAGES = 5
_CHAT_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


# ---------------------------------------------------------------------------
# Dependency injection helpers - resolve singletons from app.state
# ---------------------------------------------------------------------------
# JUNIOR DEV NOTE - FastAPI Dependency Injection
# -----------------------------------------------
# FastAPI uses Depends() to inject services into route handlers.
# The pattern:
#   1. Write a helper function that extracts a service from app.state
#   2. Create an Annotated type alias: XDep = Annotated[XType, Depends(helper)]
#   3. Declare XDep as a route param → FastAPI calls helper() automatically
#
# Tests swap a service by assigning a fake to app.state before the
# request; no route function changes.
# ---------------------------------------------------------------------------


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_store(request: Request) -> IDocumentStore:
    """Return the document store from application state."""
    return request.app.state.store


def _get_ingestion(request: Request) -> IngestionService:
    return request.app.state.ingestion


def _get_source_sync(request: Request) -> SourceSyncService:
    return request.app.state.source_sync


def _get_retrieval(request: Request) -> RetrievalService:
    return request.app.state.retrieval


def _get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def _get_tabular(request: Request) -> ITabularProvider:
    return request.app.state.tabular


def _get_verification_stream(request: Request) -> VerificationStreamController:
    return request.app.state.verification_stream


def _get_email_verifier(request: Request) -> IEmailVerifier:
    return request.app.state.email_verifier


def _get_phone_verifier(request: Request) -> IPhoneVerifier:
    return request.app.state.phone_verifier


def _get_numverify_verifier(request: Request) -> IPhoneVerifier:
    return request.app.state.numverify_verifier


def _get_backend_managers(request: Request) -> dict[str, BackendProcessManager]:
    """Return the ``{"email": ..., "phone": ...}`` backend managers."""
    return request.app.state.backend_managers


# Annotated dependency types.  PEP 593 Annotated[T, Depends(fn)] is the
# modern FastAPI pattern - avoids B008 linter warnings about function
# calls in default argument values.
SettingsDep = Annotated[Settings, Depends(_get_settings)]
StoreDep = Annotated[IDocumentStore, Depends(_get_store)]
IngestionDep = Annotated[IngestionService, Depends(_get_ingestion)]
SourceSyncDep = Annotated[SourceSyncService, Depends(_get_source_sync)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval)]
ChatServiceDep = Annotated[ChatService, Depends(_get_chat_service)]
TabularDep = Annotated[ITabularProvider, Depends(_get_tabular)]
VerificationStreamDep = Annotated[VerificationStreamController, Depends(_get_verification_stream)]
EmailVerifierDep = Annotated[IEmailVerifier, Depends(_get_email_verifier)]
PhoneVerifierDep = Annotated[IPhoneVerifier, Depends(_get_phone_verifier)]
NumVerifyDep = Annotated[IPhoneVerifier, Depends(_get_numverify_verifier)]
BackendManagersDep = Annotated[dict[str, BackendProcessManager], Depends(_get_backend_managers)]


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


async def _require_client(store: IDocumentStore, client_id: str) -> None:
    if await store.get_client(client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")


async def _require_document(store: IDocumentStore, document_id: str) -> Document:
    document = await store.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


async def _read_limited(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, rejecting it as soon as it passes *max_bytes*."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=(
                    f"File too large: >{max_bytes // (1024 * 1024)} MB. "
                    f"Maximum: {max_bytes} bytes."
                ),
            )
        chunks.append(chunk)
    return b"".join(chunks)


def _parse_id_list(raw: str | None) -> list[str] | None:
    """Accept a JSON array or a comma-separated string of document ids."""
    if raw is None or not raw.strip():
        return None
    text = raw.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Invalid source_document_ids") from exc
        return [str(item) for item in parsed if item]
    return [part.strip() for part in text.split(",") if part.strip()]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    # Chat needs both an LLM and embeddings; sheets and verification are optional.
    critical_ok = providers.get("llm", False) and providers.get("embedding", False)
    status = "healthy" if critical_ok else "degraded"

    return HealthResponse(status=status, version="0.1.0", providers=providers)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents/search/{client_id}",
    response_model=SearchResponse,
    summary="Semantic search over a client's processed documents",
)
async def search_documents(
    client_id: str,
    body: SearchRequest,
    retrieval: RetrievalDep,
) -> SearchResponse:
    result = await retrieval.search(
        client_id, body.query, limit=body.limit, include_chunks=body.include_chunks
    )
    return SearchResponse(
        query=body.query,
        documents=[ScoredDocumentOut.from_scored(scored) for scored in result.documents],
        chunks=[ChunkHitOut.from_scored(scored) for scored in result.chunks],
    )


@router.get(
    "/documents/detail/{document_id}",
    response_model=DocumentOut,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch one document",
)
async def get_document(document_id: str, store: StoreDep) -> DocumentOut:
    document = await _require_document(store, document_id)
    return DocumentOut.from_document(document)


@router.get(
    "/documents/{client_id}",
    response_model=DocumentListResponse,
    summary="List a client's documents, newest first",
)
async def list_documents(client_id: str, store: StoreDep) -> DocumentListResponse:
    documents = await store.list_documents(client_id)
    return DocumentListResponse(
        documents=[DocumentOut.from_document(doc) for doc in documents],
        total=len(documents),
    )


@router.get(
    "/documents/{client_id}/chunks/{document_id}",
    response_model=ChunkListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List the chunks of one document",
)
async def list_document_chunks(
    client_id: str, document_id: str, store: StoreDep
) -> ChunkListResponse:
    document = await _require_document(store, document_id)
    if document.client_id != client_id:
        raise HTTPException(status_code=404, detail="Document not found")
    chunks = await store.list_chunks([document_id])
    return ChunkListResponse(
        document_id=document_id,
        chunks=[ChunkOut.from_chunk(chunk) for chunk in chunks],
        total=len(chunks),
    )


@router.post(
    "/documents/{client_id}/upload",
    response_model=DocumentAcceptedResponse,
    status_code=201,
    responses={
        404: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Upload a file and process it in the background",
)
async def upload_document(
    client_id: str,
    file: UploadFile,
    background_tasks: BackgroundTasks,
    store: StoreDep,
    ingestion: IngestionDep,
    settings: SettingsDep,
) -> DocumentAcceptedResponse:
    """Store the upload as a ``pending`` document and schedule ingestion."""
    await _require_client(store, client_id)

    # --- Validate content type (security: reject unknown file types) ---
    content_type = (file.content_type or "").split(";")[0].strip()
    if content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=415,
            detail=f"File type not supported: {content_type or 'unknown'}",
        )

    data = await _read_limited(file, settings.max_upload_bytes)
    file_name = Path(file.filename or "upload").name

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    staged = upload_dir / f"{uuid.uuid4().hex}-{file_name}"
    staged.write_bytes(data)

    document = await store.insert_document(
        Document(
            id=str(uuid.uuid4()),
            client_id=client_id,
            source_type=SourceType.UPLOAD,
            file_name=file_name,
            file_type=content_type,
            file_size=len(data),
        )
    )
    _logger.info(
        "document_uploaded",
        client_id=client_id,
        document_id=document.id,
        mime_type=content_type,
        size=len(data),
    )

    # Ingestion runs after the response is sent; the document stays
    # "pending" until it finishes as "processed" or "failed".
    background_tasks.add_task(
        ingestion.process_file, document.id, staged, file_name, content_type
    )
    return DocumentAcceptedResponse(
        document=DocumentOut.from_document(document),
        message="Document uploaded and processing started",
    )


@router.post(
    "/documents/{client_id}/url",
    response_model=DocumentAcceptedResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Fetch a web URL as a document source",
)
async def import_url_document(
    client_id: str,
    body: SourceUrlRequest,
    background_tasks: BackgroundTasks,
    store: StoreDep,
    source_sync: SourceSyncDep,
    ingestion: IngestionDep,
) -> DocumentAcceptedResponse:
    await _require_client(store, client_id)
    document, staged = await source_sync.import_url(client_id, body.url)
    background_tasks.add_task(
        ingestion.process_file, document.id, staged, document.file_name, document.file_type
    )
    return DocumentAcceptedResponse(
        document=DocumentOut.from_document(document),
        message="URL fetched and processing started",
    )


@router.post(
    "/documents/{client_id}/google",
    response_model=DocumentAcceptedResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Import a Google Doc or Google Sheet",
)
async def import_google_document(
    client_id: str,
    body: SourceUrlRequest,
    background_tasks: BackgroundTasks,
    store: StoreDep,
    source_sync: SourceSyncDep,
    ingestion: IngestionDep,
) -> DocumentAcceptedResponse:
    await _require_client(store, client_id)
    document, remote = await source_sync.import_google_source(client_id, body.url)
    background_tasks.add_task(
        ingestion.process_text, document.id, remote.content, remote.title, document.file_type
    )
    return DocumentAcceptedResponse(
        document=DocumentOut.from_document(document),
        message="Google source imported and processing started",
    )


@router.post(
    "/documents/{client_id}/sync-all",
    response_model=SyncAllResponse,
    summary="Re-sync every Google source whose content changed",
)
async def sync_all_documents(
    client_id: str, store: StoreDep, source_sync: SourceSyncDep
) -> SyncAllResponse:
    await _require_client(store, client_id)
    summary = await source_sync.sync_all(client_id)
    return SyncAllResponse(**summary)


@router.post(
    "/documents/{document_id}/sync",
    response_model=DocumentAcceptedResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Force a re-sync of one Google source",
)
async def sync_document(
    document_id: str,
    background_tasks: BackgroundTasks,
    source_sync: SourceSyncDep,
    ingestion: IngestionDep,
) -> DocumentAcceptedResponse:
    document, remote = await source_sync.sync_document(document_id)
    background_tasks.add_task(
        ingestion.process_text, document.id, remote.content, remote.title, document.file_type
    )
    return DocumentAcceptedResponse(
        document=DocumentOut.from_document(document),
        message="Sync started",
    )


@router.delete(
    "/documents/{document_id}",
    response_model=DeletedResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a document and its chunks",
)
async def delete_document(document_id: str, store: StoreDep) -> DeletedResponse:
    if not await store.delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    _logger.info("document_deleted", document_id=document_id)
    return DeletedResponse(id=document_id, deleted=True)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.get(
    "/chat/{client_id}",
    response_model=ChatHistoryResponse,
    summary="Chat history, oldest first",
)
async def get_chat_history(
    client_id: str,
    chat_service: ChatServiceDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> ChatHistoryResponse:
    turns = await chat_service.history(client_id, limit)
    return ChatHistoryResponse(messages=turns)


@router.post(
    "/chat/{client_id}",
    response_model=ChatResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Send a chat message with optional images",
)
async def send_chat_message(
    client_id: str,
    chat_service: ChatServiceDep,
    settings: SettingsDep,
    message: Annotated[str, Form()] = "",
    images: Annotated[list[UploadFile] | None, File()] = None,
    include_source_images: Annotated[bool, Form()] = False,
    source_document_ids: Annotated[str | None, Form()] = None,
) -> ChatResponse:
    """Answer one message; the reply and the question are both saved to history."""
    if not message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    uploads = [image for image in (images or []) if image.filename]
    if len(uploads) > _MAX_CHAT_IMAGES:
        raise HTTPException(
            status_code=400,
            detail=f"At most {_MAX_CHAT_IMAGES} images can be attached",
        )

    attachments: list[ImageAttachment] = []
    for upload in uploads:
        media_type = (upload.content_type or "").split(";")[0].strip()
        if media_type not in _CHAT_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Not an image: {upload.filename}")
        data = await _read_limited(upload, settings.max_upload_bytes)
        attachments.append(
            ImageAttachment(file_name=upload.filename or "image", media_type=media_type, data=data)
        )

    reply = await chat_service.chat(
        client_id,
        message.strip(),
        images=attachments,
        include_source_images=include_source_images,
        source_document_ids=_parse_id_list(source_document_ids),
    )
    return ChatResponse(
        message=reply.message,
        context_documents=reply.sources,
        images_processed={
            "uploaded": reply.images_uploaded,
            "fromSources": reply.images_from_sources,
        },
        route=reply.route.value,
        sheet_operations=reply.operations,
    )


@router.delete(
    "/chat/{client_id}",
    response_model=ClearHistoryResponse,
    summary="Clear a client's chat history",
)
async def clear_chat_history(client_id: str, chat_service: ChatServiceDep) -> ClearHistoryResponse:
    removed = await chat_service.clear_history(client_id)
    return ClearHistoryResponse(deleted=removed)


@router.post(
    "/agent/query",
    response_model=AgentQueryResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Programmatic agent query with spreadsheet tools",
)
async def agent_query(body: AgentQueryRequest, chat_service: ChatServiceDep) -> AgentQueryResponse:
    reply = await chat_service.agent_query(
        body.client_id,
        body.prompt,
        save_history=body.save_history,
        conversation_id=body.conversation_id,
    )
    return AgentQueryResponse(
        response=reply.response,
        client={"id": reply.client_id, "name": reply.client_name},
        context={
            "documentsUsed": reply.documents_used,
            "chunksUsed": reply.chunks_used,
            "sheetsAvailable": reply.sheets_available,
            "toolsUsed": reply.tools_used,
        },
        operations=reply.operations,
        conversation_id=reply.conversation_id,
    )


# ---------------------------------------------------------------------------
# Connected sheets
# ---------------------------------------------------------------------------


@router.post(
    "/sheets/connect",
    response_model=ConnectedSheet,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Connect a Google Sheet to a client",
)
async def connect_sheet(
    body: SheetConnectRequest, store: StoreDep, tabular: TabularDep
) -> ConnectedSheet:
    await _require_client(store, body.client_id)
    spreadsheet_id = extract_sheet_id(body.sheet_url)
    if not spreadsheet_id:
        raise HTTPException(status_code=400, detail="Invalid Google Sheets URL")

    info = await tabular.get_info(spreadsheet_id)
    sheet = await store.upsert_connected_sheet(
        ConnectedSheet(
            id=str(uuid.uuid4()),
            client_id=body.client_id,
            spreadsheet_id=spreadsheet_id,
            sheet_url=body.sheet_url,
            name=body.name or info.title,
            sheet_tabs=info.tabs,
        )
    )
    _logger.info(
        "sheet_connected",
        client_id=body.client_id,
        spreadsheet_id=spreadsheet_id,
        tabs=len(info.tabs),
    )
    return sheet


@router.get(
    "/sheets/{client_id}",
    response_model=ConnectedSheetListResponse,
    summary="List a client's connected sheets",
)
async def list_sheets(client_id: str, store: StoreDep) -> ConnectedSheetListResponse:
    return ConnectedSheetListResponse(sheets=await store.list_connected_sheets(client_id))


@router.delete(
    "/sheets/{client_id}/{spreadsheet_id}",
    response_model=DeletedResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Disconnect a sheet",
)
async def disconnect_sheet(client_id: str, spreadsheet_id: str, store: StoreDep) -> DeletedResponse:
    if not await store.delete_connected_sheet(client_id, spreadsheet_id):
        raise HTTPException(status_code=404, detail="Sheet not connected")
    return DeletedResponse(id=spreadsheet_id, deleted=True)


@router.get(
    "/sheets/{client_id}/{spreadsheet_id}/operations",
    response_model=OperationListResponse,
    summary="Recent operations performed on a sheet",
)
async def list_sheet_operations(
    client_id: str,
    spreadsheet_id: str,
    store: StoreDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> OperationListResponse:
    connected = {sheet.spreadsheet_id for sheet in await store.list_connected_sheets(client_id)}
    if spreadsheet_id not in connected:
        raise HTTPException(status_code=404, detail="Sheet not connected")
    operations = await store.list_operations(spreadsheet_id, limit)
    return OperationListResponse(spreadsheet_id=spreadsheet_id, operations=operations)


# ---------------------------------------------------------------------------
# Leads verification
# ---------------------------------------------------------------------------


@router.get(
    "/leads/status",
    response_model=BackendsStatusResponse,
    summary="Availability of the email and phone verification backends",
)
async def leads_status(managers: BackendManagersDep) -> BackendsStatusResponse:
    return BackendsStatusResponse(
        email=await managers["email"].status(),
        phone=await managers["phone"].status(),
    )


def _manager_for(managers: dict[str, BackendProcessManager], name: str) -> BackendProcessManager:
    manager = managers.get(name)
    if manager is None:
        raise HTTPException(status_code=404, detail=f"Unknown backend: {name}")
    return manager


@router.post(
    "/leads/backends/{name}/start",
    response_model=BackendActionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Start a verification backend",
)
async def start_backend(name: str, managers: BackendManagersDep) -> BackendActionResponse:
    result = await _manager_for(managers, name).start()
    return BackendActionResponse(**result.model_dump())


@router.post(
    "/leads/backends/{name}/stop",
    response_model=BackendActionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Stop a verification backend",
)
async def stop_backend(name: str, managers: BackendManagersDep) -> BackendActionResponse:
    result = await _manager_for(managers, name).stop()
    return BackendActionResponse(**result.model_dump())


@router.post(
    "/leads/verify-email",
    response_model=VerificationResponse,
    summary="Verify a single email address",
)
async def verify_email(body: VerifyEmailRequest, verifier: EmailVerifierDep) -> VerificationResponse:
    return VerificationResponse(result=await verifier.verify(body.email.strip()))


@router.post(
    "/leads/verify-phone",
    response_model=VerificationResponse,
    summary="Verify a single phone number",
)
async def verify_phone(
    body: VerifyPhoneRequest,
    phone_verifier: PhoneVerifierDep,
    numverify: NumVerifyDep,
) -> VerificationResponse:
    verifier = numverify if body.use_numverify else phone_verifier
    return VerificationResponse(result=await verifier.verify(body.phone.strip()))


@router.get(
    "/leads/{spreadsheet_id}/preview",
    response_model=SheetPreviewResponse,
    summary="Headers and sample rows for choosing verification columns",
)
async def preview_sheet(
    spreadsheet_id: str,
    tabular: TabularDep,
    sheet_name: str | None = None,
) -> SheetPreviewResponse:
    info = await tabular.get_info(spreadsheet_id)
    target = sheet_name or (info.tabs[0].title if info.tabs else "Sheet1")
    values = await tabular.read_range(spreadsheet_id, qualify_range(target, "1:10"))
    preview = build_preview(info, target, values)
    return SheetPreviewResponse(
        spreadsheet_info=preview["spreadsheetInfo"],
        sheet_name=preview["sheetName"],
        columns=preview["columns"],
        total_rows=preview["totalRows"],
    )


async def _single_event(event: VerificationEvent) -> AsyncIterator[VerificationEvent]:
    yield event


@router.get(
    "/leads/{spreadsheet_id}/verify-stream",
    summary="Verify email/phone columns, streaming progress as server-sent events",
)
async def verify_stream(
    spreadsheet_id: str,
    controller: VerificationStreamDep,
    sheet_name: str | None = None,
    email_column: str | None = None,
    phone_column: str | None = None,
    use_numverify: bool = False,
) -> StreamingResponse:
    """Stream ``start``, per-row progress and a final ``complete`` or ``error`` event.

    Invalid options are reported as a single ``error`` event so that
    EventSource clients see the message instead of a bare HTTP failure.
    """
    try:
        options = VerificationOptions(
            sheet_name=sheet_name,
            email_column=email_column,
            phone_column=phone_column,
            use_numverify=use_numverify,
        )
    except ValidationError as exc:
        message = exc.errors()[0]["msg"].removeprefix("Value error, ")
        return sse_response(_single_event(VerificationEvent(event="error", data={"message": message})))

    return sse_response(controller.stream(spreadsheet_id, options))
