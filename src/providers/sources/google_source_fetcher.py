"""Remote source fetching: Google Docs, Google Sheets and plain web URLs.

Google Docs are read through the public export endpoint
(``/export?format=txt``), so the document must be shared as "Anyone with
the link can view".  Google Sheets go through the configured
:class:`ITabularProvider` when credentials are present, rendering every tab
as ``=== TAB: <title> ===`` followed by tab-separated rows; without
credentials only the first tab is available via the CSV export.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx
import structlog

from src.interfaces.source_fetcher import IRemoteSourceFetcher
from src.interfaces.tabular_provider import ITabularProvider
from src.models.document import GOOGLE_DOC_TYPE, GOOGLE_SHEET_TYPE, RemoteContent
from src.models.sheet import SheetTab
from src.utils.errors import ExtractionError, KnowledgeAgentError

logger = structlog.get_logger(logger_name=__name__)

GOOGLE_SLIDES_TYPE = "google_slides"

_DOC_ID_RE = re.compile(r"/document/d/([a-zA-Z0-9-_]+)")
_SHEET_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_TITLE_RE = re.compile(r"<title>([^<]+)</title>")
_FILENAME_RE = re.compile(r"filename[^;=\n]*=((['\"]).*?\2|[^;\n]*)")
_DEFAULT_TIMEOUT = 30.0


def google_source_type(url: str) -> str | None:
    """Classify a Google URL as google_doc / google_sheet / google_slides, else None."""
    if "docs.google.com/document" in url:
        return GOOGLE_DOC_TYPE
    if "docs.google.com/spreadsheets" in url:
        return GOOGLE_SHEET_TYPE
    if "docs.google.com/presentation" in url:
        return GOOGLE_SLIDES_TYPE
    return None


def extract_doc_id(url: str) -> str | None:
    match = _DOC_ID_RE.search(url)
    return match.group(1) if match else None


def extract_sheet_id(url: str) -> str | None:
    match = _SHEET_ID_RE.search(url)
    return match.group(1) if match else None


def _access_error(status_code: int, kind: str) -> ExtractionError:
    if status_code == 404:
        return ExtractionError(
            message=f"{kind} not found. Make sure it exists and is publicly accessible.",
            provider_name="google",
        )
    if status_code == 403:
        return ExtractionError(
            message=f'Access denied. Make sure the {kind.lower()} is set to "Anyone with the link can view".',
            provider_name="google",
        )
    return ExtractionError(
        message=f"Failed to fetch {kind.lower()}: HTTP {status_code}", provider_name="google"
    )


class GoogleSourceFetcher(IRemoteSourceFetcher):
    """Fetches Google Docs/Sheets text and arbitrary URLs over httpx."""

    def __init__(
        self,
        tabular: ITabularProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
        use_sheets_api: bool = True,
    ) -> None:
        self._tabular = tabular
        self._use_sheets_api = use_sheets_api and tabular is not None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT), follow_redirects=True
        )

    async def _get(self, url: str) -> httpx.Response:
        try:
            return await self._client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ExtractionError(message=f"Failed to fetch {url}: {exc}", provider_name="google") from exc

    async def _page_title(self, url: str, suffix: str, default: str) -> str:
        try:
            response = await self._client.get(url, follow_redirects=True)
        except httpx.HTTPError:
            return default
        if response.status_code != 200:
            return default
        match = _TITLE_RE.search(response.text)
        if not match:
            return default
        return match.group(1).replace(suffix, "").strip() or default

    # ------------------------------------------------------------------
    # IRemoteSourceFetcher implementation
    # ------------------------------------------------------------------

    async def fetch_google_doc(self, doc_id: str) -> RemoteContent:
        response = await self._get(f"https://docs.google.com/document/d/{doc_id}/export?format=txt")
        if response.status_code != 200:
            raise _access_error(response.status_code, "Document")

        title = await self._page_title(
            f"https://docs.google.com/document/d/{doc_id}/export?format=html",
            " - Google Docs",
            "Untitled Google Doc",
        )
        logger.info("google_doc_fetched", doc_id=doc_id, characters=len(response.text))
        return RemoteContent(title=title, content=response.text)

    async def fetch_google_sheet(self, spreadsheet_id: str) -> RemoteContent:
        if self._use_sheets_api and self._tabular is not None:
            return await self._fetch_sheet_via_api(self._tabular, spreadsheet_id)

        logger.warning("google_sheet_csv_fallback", spreadsheet_id=spreadsheet_id)
        response = await self._get(
            f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/export?format=csv"
        )
        if response.status_code != 200:
            raise _access_error(response.status_code, "Spreadsheet")
        title = await self._page_title(
            f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit",
            " - Google Sheets",
            "Untitled Google Sheet",
        )
        return RemoteContent(
            title=title,
            content=response.text,
            tabs=[SheetTab(sheet_id=0, title="Sheet1", index=0)],
        )

    async def _fetch_sheet_via_api(
        self, tabular: ITabularProvider, spreadsheet_id: str
    ) -> RemoteContent:
        info = await tabular.get_info(spreadsheet_id)

        sections: list[str] = []
        for tab in info.tabs:
            header = f"\n=== TAB: {tab.title} ===\n"
            try:
                values = await tabular.read_range(spreadsheet_id, tab.title)
            except KnowledgeAgentError as exc:
                logger.warning("google_sheet_tab_failed", tab=tab.title, error=str(exc))
                sections.append(f"{header}(Error fetching content)\n")
                continue
            if values:
                body = "".join("\t".join(str(cell) for cell in row) + "\n" for row in values)
            else:
                body = "(empty)\n"
            sections.append(header + body)

        logger.info("google_sheet_fetched", spreadsheet_id=spreadsheet_id, tabs=len(info.tabs))
        return RemoteContent(title=info.title, content="\n".join(sections), tabs=info.tabs)

    async def fetch_url(self, url: str) -> tuple[bytes, str, str]:
        response = await self._get(url)
        if response.status_code >= 400:
            raise ExtractionError(
                message=f"Failed to fetch URL: {response.status_code} {response.reason_phrase}",
            )

        content_type = response.headers.get("content-type", "application/octet-stream")
        mime_type = content_type.split(";")[0].strip()

        file_name = ""
        disposition = response.headers.get("content-disposition")
        if disposition:
            match = _FILENAME_RE.search(disposition)
            if match:
                file_name = match.group(1).replace('"', "").replace("'", "")
        if not file_name:
            file_name = PurePosixPath(urlparse(url).path).name or "downloaded-file"

        return response.content, file_name, mime_type
