"""Chat context assembly: routing decision plus the rendered system prompt.

Given a user message and everything retrieved for it, the
:class:`ChatContextAssembler` decides which responder handles the turn and
builds that responder's system prompt:

- ``tool_agent``: the message is about a connected spreadsheet and carries
  no images.  The prompt lists the connected sheets and their tabs and
  explains the spreadsheet tools.
- ``rag``: everything else.  The prompt carries the relevant excerpts,
  document summaries, any image analysis, a current-date block and the
  citation guidelines.

Whether a message is "about a sheet" is decided by a pluggable
:class:`SheetQueryClassifier`; :class:`KeywordSheetQueryClassifier` is the
default rule.
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from src.models.conversation import Client, ConversationTurn, ImageAttachment
from src.models.document import ScoredChunk, SearchResult
from src.models.sheet import ConnectedSheet

CLIENT_CONTEXT_ID = "client-context"

SHEET_KEYWORDS: tuple[str, ...] = (
    "sheet",
    "spreadsheet",
    "tab",
    "tabs",
    "cell",
    "row",
    "column",
    "excel",
    "google sheet",
    "data in",
    "table",
    "values in",
    "what's in the",
)


class ChatRoute(str, Enum):
    RAG = "rag"
    TOOL_AGENT = "tool_agent"


# ---------------------------------------------------------------------------
# Sheet query classification
# ---------------------------------------------------------------------------
class SheetQueryClassifier(Protocol):
    """Decides whether a message should be answered by the spreadsheet agent."""

    def is_sheet_query(self, message: str, sheets: Sequence[ConnectedSheet]) -> bool: ...


class KeywordSheetQueryClassifier:
    """Keyword rule: a sheet keyword, or a connected sheet/tab name, appears.

    Nothing counts as a sheet query while no sheet is connected.
    """

    def __init__(self, keywords: Sequence[str] = SHEET_KEYWORDS) -> None:
        self._keywords = tuple(k.lower() for k in keywords)

    def is_sheet_query(self, message: str, sheets: Sequence[ConnectedSheet]) -> bool:
        if not sheets:
            return False
        lowered = message.lower()
        if any(keyword in lowered for keyword in self._keywords):
            return True
        for sheet in sheets:
            if sheet.name and sheet.name.lower() in lowered:
                return True
            if any(title and title.lower() in lowered for title in sheet.tab_titles):
                return True
        return False


# ---------------------------------------------------------------------------
# Context bundle
# ---------------------------------------------------------------------------
class ContextDocument(BaseModel):
    """A document as presented to the model (including the client pseudo-document)."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    summary: str = ""
    keywords: list[str] = Field(default_factory=list)
    similarity: float | None = None


class ChatContext(BaseModel):
    """Everything a responder needs for one chat turn."""

    model_config = ConfigDict(frozen=True)

    route: ChatRoute
    message: str
    system_prompt: str
    documents: list[ContextDocument] = Field(default_factory=list)
    chunks: list[ScoredChunk] = Field(default_factory=list)
    history: list[ConversationTurn] = Field(default_factory=list)
    images: list[ImageAttachment] = Field(default_factory=list)
    source_images: list[ImageAttachment] = Field(default_factory=list)
    connected_sheets: list[ConnectedSheet] = Field(default_factory=list)

    def history_messages(self) -> list[dict[str, Any]]:
        return [{"role": turn.role.value, "content": turn.content} for turn in self.history]

    def user_message(self) -> dict[str, Any]:
        """The current user turn; images are attached as extra content parts."""
        attachments = [*self.images, *self.source_images]
        if not attachments:
            return {"role": "user", "content": self.message}
        parts: list[dict[str, Any]] = [{"type": "text", "text": self.message}]
        for image in attachments:
            parts.append(
                {
                    "type": "image",
                    "media_type": image.media_type,
                    "data": base64.b64encode(image.data).decode("ascii"),
                }
            )
        return {"role": "user", "content": parts}


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------
def render_date_context(now: datetime) -> str:
    quarter = (now.month - 1) // 3 + 1
    return (
        "## Current Date & Time\n"
        f"- **Today**: {now.strftime('%A, %B')} {now.day}, {now.year}\n"
        f"- **ISO**: {now.isoformat()}\n"
        f"- **Quarter**: Q{quarter} {now.year}\n"
        'Use this to understand relative time references like "this week", '
        '"last month", "recently", etc.'
    )


def render_rag_prompt(
    documents: Sequence[ContextDocument],
    chunks: Sequence[ScoredChunk],
    now: datetime,
    image_analysis: str | None = None,
    source_images: Sequence[ImageAttachment] = (),
    has_images: bool = False,
) -> str:
    """System prompt for the plain retrieval-augmented responder."""
    context = ""
    if chunks:
        context += "## Relevant Document Excerpts:\n\n"
        for idx, scored in enumerate(chunks, start=1):
            context += f"### [Source {idx}: {scored.document_title}]\n{scored.chunk.content}\n\n"
        context += "---\n\n"

    if documents:
        context += "## Document Summaries:\n\n"
        for doc in documents:
            context += f"**{doc.title}** (ID: {doc.id})\nSummary: {doc.summary}\n"
            if doc.keywords:
                context += f"Keywords: {', '.join(doc.keywords)}\n"
            context += "\n"

    if image_analysis:
        context = f"## Uploaded Image Analysis:\n{image_analysis}\n\n---\n\n{context}"

    if source_images:
        context += "\n## Images from Document Sources:\n"
        for idx, image in enumerate(source_images, start=1):
            context += f"\n### Image {idx}: {image.file_name}\n"
        context += "\n---\n"

    image_capability = " and image analysis capabilities" if has_images else ""
    image_guideline = (
        "6. **Reference images** - When discussing images, reference them by their "
        "file names or position\n"
        if has_images
        else ""
    )
    return (
        "You are a knowledgeable AI assistant with access to the user's document "
        f"library{image_capability}.\n\n"
        "Your task is to answer questions using the provided document context. "
        "Always cite your sources.\n\n"
        f"{render_date_context(now)}\n\n"
        f"{context}\n"
        "## Response Guidelines:\n"
        "1. **Always cite sources** - When referencing information from documents, "
        "cite them by document title like this: [Source: Document Title]\n"
        "2. **Be accurate** - Only state information that is directly supported by "
        "the provided documents\n"
        "3. **Acknowledge limitations** - If the documents don't contain relevant "
        "information, clearly state that\n"
        "4. **Format well** - Use markdown for code blocks, tables, lists, and emphasis\n"
        "5. **Be comprehensive** - Provide thorough answers while staying relevant "
        "to the question\n"
        f"{image_guideline}\n"
        "If you cannot find relevant information in the provided documents, say: "
        "\"I couldn't find specific information about this in your documents. "
        'However, based on general knowledge..." and then provide helpful context.'
    )


def render_agent_prompt(
    sheets: Sequence[ConnectedSheet],
    documents: Sequence[ContextDocument],
    chunks: Sequence[ScoredChunk],
    now: datetime,
) -> str:
    """System prompt for the spreadsheet tool agent."""
    sheet_context = "## Connected Google Sheets:\n"
    for sheet in sheets:
        tabs = ", ".join(sheet.tab_titles) or "(unknown)"
        sheet_context += (
            f'- "{sheet.name or sheet.spreadsheet_id}" '
            f"(spreadsheet_id: {sheet.spreadsheet_id}); tabs: {tabs}\n"
        )

    doc_context = ""
    if documents:
        doc_context = "## Relevant Documents:\n"
        for doc in documents:
            doc_context += f"- {doc.title}: {doc.summary or 'No summary'}\n"
        doc_context += "\n"
    if chunks:
        doc_context += "## Relevant Document Excerpts:\n\n"
        for idx, scored in enumerate(chunks, start=1):
            doc_context += f"### [Source {idx}: {scored.document_title}]\n{scored.chunk.content}\n\n"

    return (
        "You are an AI assistant that can read and edit the user's connected Google Sheets "
        "and answer questions using their documents.\n\n"
        f"{render_date_context(now)}\n\n"
        f"{sheet_context}\n"
        f"{doc_context}"
        "## Your Capabilities:\n"
        "1. **list_tabs** - List the tabs of a spreadsheet\n"
        "2. **read_sheet** - Read data from the spreadsheet to understand its current state\n"
        "3. **write_cells** - Write data to specific cells (overwrites existing)\n"
        "4. **append_rows** - Add new rows at the end of the data\n"
        "5. **update_cell** - Update a single cell\n"
        "6. **clear_range** - Clear values from a range\n\n"
        "## Guidelines:\n"
        "- ALWAYS read the sheet first before making changes, so you understand the "
        "current structure\n"
        '- When writing formulas, start with = (e.g., "=SUM(A1:A10)")\n'
        "- Confirm what changes you're about to make before executing destructive ones\n"
        "- After making changes, summarize what was done\n"
        '- Use the correct sheet tab name in ranges (e.g., "Sheet1!A1:B5")\n'
        "- Cite documents by title when you use them"
    )


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------
class ChatContextAssembler:
    """Builds a :class:`ChatContext` from retrieved material.

    Parameters
    ----------
    classifier:
        Sheet query rule; defaults to :class:`KeywordSheetQueryClassifier`.
    clock:
        Returns "now"; injectable so prompts are reproducible in tests.
    """

    def __init__(
        self,
        classifier: SheetQueryClassifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._classifier = classifier or KeywordSheetQueryClassifier()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def choose_route(
        self,
        message: str,
        connected_sheets: Sequence[ConnectedSheet],
        has_images: bool,
    ) -> ChatRoute:
        if has_images:
            return ChatRoute.RAG
        if self._classifier.is_sheet_query(message, connected_sheets):
            return ChatRoute.TOOL_AGENT
        return ChatRoute.RAG

    def assemble(
        self,
        message: str,
        client: Client,
        history: Sequence[ConversationTurn],
        search_result: SearchResult,
        connected_sheets: Sequence[ConnectedSheet] = (),
        images: Sequence[ImageAttachment] = (),
        source_images: Sequence[ImageAttachment] = (),
        image_analysis: str | None = None,
        route: ChatRoute | None = None,
    ) -> ChatContext:
        documents = [
            ContextDocument(
                id=scored.document.id,
                title=scored.document.display_title,
                summary=scored.document.summary or "",
                keywords=scored.document.keywords,
                similarity=scored.similarity,
            )
            for scored in search_result.documents
        ]
        if client.description:
            documents.insert(
                0,
                ContextDocument(
                    id=CLIENT_CONTEXT_ID,
                    title="Client Context",
                    summary=client.description,
                ),
            )

        chosen = route or self.choose_route(message, connected_sheets, bool(images))
        now = self._clock()
        if chosen == ChatRoute.TOOL_AGENT:
            prompt = render_agent_prompt(connected_sheets, documents, search_result.chunks, now)
        else:
            prompt = render_rag_prompt(
                documents,
                search_result.chunks,
                now,
                image_analysis=image_analysis,
                source_images=source_images,
                has_images=bool(images or source_images or image_analysis),
            )

        return ChatContext(
            route=chosen,
            message=message,
            system_prompt=prompt,
            documents=documents,
            chunks=list(search_result.chunks),
            history=list(history),
            images=list(images),
            source_images=list(source_images),
            connected_sheets=list(connected_sheets),
        )
