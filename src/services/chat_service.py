"""Chat and agent-query orchestration.

One chat turn, start to finish:

    1. Load the client (404 when unknown) and recent history
    2. Retrieve relevant documents and chunks for the message
    3. Load the client's connected sheets
    4. Optionally describe uploaded images and inline source images
    5. Assemble the context and pick a route
    6. Answer through the spreadsheet tool loop or the plain RAG responder
    7. Persist the user and assistant turns with source references

The agent API (:meth:`ChatService.agent_query`) reuses the same pieces but
keys history by ``conversation_id`` and only persists when asked to.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.models.conversation import (
    Client,
    ConversationTurn,
    ImageAttachment,
    Role,
    SourceReference,
)
from src.models.document import SearchResult
from src.models.tools import ToolOperation
from src.services.chat_context import ChatContext, ChatContextAssembler, ChatRoute
from src.utils.errors import KnowledgeAgentError, NotFoundError

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.llm_provider import ILLMProvider
    from src.services.retrieval_service import RetrievalService
    from src.services.tool_orchestrator import ToolCallOrchestrator

logger = structlog.get_logger(logger_name=__name__)

SOURCE_REFERENCE_THRESHOLD = 0.3
MAX_SOURCE_IMAGES = 5


class ChatReply(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: ConversationTurn
    sources: list[SourceReference] = Field(default_factory=list)
    operations: list[ToolOperation] = Field(default_factory=list)
    images_uploaded: int = 0
    images_from_sources: int = 0
    route: ChatRoute = ChatRoute.RAG


class AgentReply(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: str
    client_id: str
    client_name: str
    documents_used: int = 0
    chunks_used: int = 0
    sheets_available: int = 0
    tools_used: bool = False
    operations: list[ToolOperation] = Field(default_factory=list)
    conversation_id: str | None = None


def source_references(
    search: SearchResult, threshold: float = SOURCE_REFERENCE_THRESHOLD
) -> list[SourceReference]:
    """References for documents scoring above the citation threshold."""
    return [
        SourceReference(
            id=scored.document.id,
            title=scored.document.display_title,
            similarity=scored.similarity,
            is_image=scored.document.is_image,
        )
        for scored in search.documents
        if scored.similarity > threshold
    ]


class ChatService:
    """Answers client questions from their documents and connected sheets.

    Parameters
    ----------
    store:
        Document store (clients, history, sheets).
    retrieval:
        Two-stage semantic search.
    assembler:
        Context/prompt builder and router.
    llm:
        Responder for the plain RAG route and image description.
    orchestrator:
        Spreadsheet tool loop; ``None`` disables the tool route.
    http_client:
        Used to fetch image documents for inline source images.
    history_limit:
        Number of recent turns sent with a chat message.
    agent_history_limit:
        Number of turns loaded for an agent conversation.
    """

    def __init__(
        self,
        store: IDocumentStore,
        retrieval: RetrievalService,
        assembler: ChatContextAssembler,
        llm: ILLMProvider,
        orchestrator: ToolCallOrchestrator | None = None,
        http_client: httpx.AsyncClient | None = None,
        history_limit: int = 10,
        agent_history_limit: int = 20,
        search_limit: int = 5,
        source_threshold: float = SOURCE_REFERENCE_THRESHOLD,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> None:
        self._store = store
        self._retrieval = retrieval
        self._assembler = assembler
        self._llm = llm
        self._orchestrator = orchestrator
        self._http = http_client
        self._history_limit = history_limit
        self._agent_history_limit = agent_history_limit
        self._search_limit = search_limit
        self._source_threshold = source_threshold
        self._temperature = temperature
        self._max_tokens = max_tokens

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        client_id: str,
        message: str,
        images: Sequence[ImageAttachment] = (),
        include_source_images: bool = False,
        source_document_ids: Sequence[str] | None = None,
    ) -> ChatReply:
        """Answer *message* for *client_id* and persist both turns.

        Raises
        ------
        NotFoundError
            If the client does not exist.
        src.utils.errors.LLMError
            If the responder fails.
        """
        client = await self._require_client(client_id)

        recent = await self._store.recent_turns(client_id, self._history_limit)
        history = list(reversed(recent))

        search = await self._retrieval.search(client_id, message, limit=self._search_limit)
        sheets = await self._store.list_connected_sheets(client_id)

        image_analysis = await self._describe_uploads(images, message)
        source_images: list[ImageAttachment] = []
        if include_source_images:
            source_images = await self._load_source_images(
                client_id, search, source_document_ids
            )

        context = self._assembler.assemble(
            message,
            client,
            history,
            search,
            connected_sheets=sheets,
            images=images,
            source_images=source_images,
            image_analysis=image_analysis,
            route=None if self._orchestrator else ChatRoute.RAG,
        )
        logger.info(
            "chat_routed",
            client_id=client_id,
            route=context.route.value,
            documents=len(search.documents),
            chunks=len(search.chunks),
            sheets=len(sheets),
        )

        response, operations = await self._respond(context)

        sources = source_references(search, self._source_threshold)
        context_ids = [scored.document.id for scored in search.documents]
        user_content = message
        if images:
            user_content = f"{message}\n[Attached {len(images)} image(s)]"

        await self._store.append_turn(
            ConversationTurn(
                id=str(uuid.uuid4()),
                client_id=client_id,
                role=Role.USER,
                content=user_content,
                context_docs=context_ids,
            )
        )
        assistant = await self._store.append_turn(
            ConversationTurn(
                id=str(uuid.uuid4()),
                client_id=client_id,
                role=Role.ASSISTANT,
                content=response,
                context_docs=context_ids,
                sources=sources,
            )
        )
        return ChatReply(
            message=assistant,
            sources=sources,
            operations=operations,
            images_uploaded=len(images),
            images_from_sources=len(source_images),
            route=context.route,
        )

    # ------------------------------------------------------------------
    # Agent API
    # ------------------------------------------------------------------

    async def agent_query(
        self,
        client_id: str,
        prompt: str,
        save_history: bool = False,
        conversation_id: str | None = None,
    ) -> AgentReply:
        """Answer an agent prompt; the tool route is used whenever sheets are connected."""
        client = await self._require_client(client_id)

        history: list[ConversationTurn] = []
        if conversation_id:
            history = await self._store.conversation_turns(
                client_id, conversation_id, self._agent_history_limit
            )

        search = await self._retrieval.search(client_id, prompt, limit=self._search_limit)
        sheets = await self._store.list_connected_sheets(client_id)

        route = ChatRoute.TOOL_AGENT if sheets and self._orchestrator else ChatRoute.RAG
        context = self._assembler.assemble(
            prompt, client, history, search, connected_sheets=sheets, route=route
        )
        response, operations = await self._respond(context)
        tools_used = context.route == ChatRoute.TOOL_AGENT and bool(operations)

        saved_id: str | None = None
        if save_history:
            saved_id = conversation_id or str(uuid.uuid4())
            context_ids = [scored.document.id for scored in search.documents]
            await self._store.append_turn(
                ConversationTurn(
                    id=str(uuid.uuid4()),
                    client_id=client_id,
                    role=Role.USER,
                    content=prompt,
                    context_docs=context_ids,
                    conversation_id=saved_id,
                )
            )
            await self._store.append_turn(
                ConversationTurn(
                    id=str(uuid.uuid4()),
                    client_id=client_id,
                    role=Role.ASSISTANT,
                    content=response,
                    context_docs=context_ids,
                    sources=source_references(search, self._source_threshold),
                    conversation_id=saved_id,
                )
            )

        logger.info(
            "agent_query_answered",
            client_id=client_id,
            route=context.route.value,
            operations=len(operations),
            saved=save_history,
        )
        return AgentReply(
            response=response,
            client_id=client.id,
            client_name=client.name,
            documents_used=len(search.documents),
            chunks_used=len(search.chunks),
            sheets_available=len(sheets),
            tools_used=tools_used,
            operations=operations,
            conversation_id=saved_id,
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def history(self, client_id: str, limit: int = 50) -> list[ConversationTurn]:
        """The last *limit* turns, oldest first."""
        turns = await self._store.recent_turns(client_id, limit)
        return list(reversed(turns))

    async def clear_history(self, client_id: str) -> int:
        removed = await self._store.clear_turns(client_id)
        logger.info("chat_history_cleared", client_id=client_id, turns=removed)
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_client(self, client_id: str) -> Client:
        client = await self._store.get_client(client_id)
        if client is None:
            raise NotFoundError(message="Client not found")
        return client

    async def _respond(self, context: ChatContext) -> tuple[str, list[ToolOperation]]:
        messages: list[dict[str, Any]] = context.history_messages()
        if context.route == ChatRoute.TOOL_AGENT and self._orchestrator is not None:
            messages.append({"role": "user", "content": context.message})
            result = await self._orchestrator.run(
                context.system_prompt, messages, context.connected_sheets
            )
            return result.response, result.operations

        if self._llm.supports_vision():
            messages.append(context.user_message())
        else:
            messages.append({"role": "user", "content": context.message})
        completion = await self._llm.chat(
            system_prompt=context.system_prompt,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        return completion.text, []

    async def _describe_uploads(
        self, images: Sequence[ImageAttachment], question: str
    ) -> str | None:
        if not images or not self._llm.supports_vision():
            return None
        try:
            return await self._llm.describe_images(
                [(image.data, image.media_type) for image in images], question
            )
        except (KnowledgeAgentError, NotImplementedError) as exc:
            logger.warning("image_analysis_failed", images=len(images), error=str(exc))
            return None

    async def _load_source_images(
        self, client_id: str, search: SearchResult, explicit_ids: Sequence[str] | None
    ) -> list[ImageAttachment]:
        if explicit_ids:
            candidates = []
            for document_id in list(explicit_ids)[:MAX_SOURCE_IMAGES]:
                document = await self._store.get_document(document_id)
                if document is None:
                    continue
                if document.client_id != client_id:
                    logger.warning(
                        "source_image_other_client", client_id=client_id, document_id=document_id
                    )
                    continue
                candidates.append(document)
        else:
            candidates = [s.document for s in search.documents if s.document.is_image]

        images: list[ImageAttachment] = []
        for document in candidates[:MAX_SOURCE_IMAGES]:
            if not document.is_image or not document.file_url or self._http is None:
                continue
            try:
                response = await self._http.get(document.file_url)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("source_image_fetch_failed", document_id=document.id, error=str(exc))
                continue
            media_type = response.headers.get("content-type", document.file_type).split(";")[0]
            images.append(
                ImageAttachment(
                    file_name=document.file_name,
                    media_type=media_type,
                    data=response.content,
                    document_id=document.id,
                )
            )
        return images
