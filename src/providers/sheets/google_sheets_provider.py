"""Google Sheets provider over the Sheets REST API (v4) using httpx.

Implements :class:`ITabularProvider` with a bearer token
(``GOOGLE_SHEETS_ACCESS_TOKEN``).  Values are written with
``valueInputOption=USER_ENTERED`` so formulas and dates are interpreted the
same way as typed input.

HTTP 429 responses, and any error body that mentions "quota", are raised as
:class:`QuotaExceededError` so callers can back off and retry.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.tabular_provider import ITabularProvider
from src.models.sheet import SheetTab, SpreadsheetInfo
from src.utils.errors import ConfigurationError, QuotaExceededError, SheetsError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_PROVIDER = "google_sheets"


def _tab_from_properties(props: dict[str, Any]) -> SheetTab:
    grid = props.get("gridProperties") or {}
    return SheetTab(
        sheet_id=props.get("sheetId", 0),
        title=props.get("title", ""),
        index=props.get("index", 0),
        row_count=grid.get("rowCount", 0),
        column_count=grid.get("columnCount", 0),
    )


class GoogleSheetsProvider(ITabularProvider):
    """Spreadsheet access backed by the Google Sheets REST API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._token = settings.google_sheets_access_token
        self._base_url = settings.google_sheets_base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(_DEFAULT_TIMEOUT))

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _values_url(self, spreadsheet_id: str, range_: str, suffix: str = "") -> str:
        return f"{self._base_url}/{spreadsheet_id}/values/{quote(range_, safe='')}{suffix}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self._token:
            raise ConfigurationError(
                message="Google Sheets credentials not configured. Set GOOGLE_SHEETS_ACCESS_TOKEN",
                provider_name=_PROVIDER,
            )
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as exc:
            raise SheetsError(message=f"Sheets request failed: {exc}", provider_name=_PROVIDER) from exc

        if response.status_code >= 400:
            detail = self._error_message(response)
            if response.status_code == 429 or "quota" in detail.lower():
                raise QuotaExceededError(message=detail, provider_name=_PROVIDER)
            raise SheetsError(
                message=f"HTTP {response.status_code}: {detail}", provider_name=_PROVIDER
            )
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500] or response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or error.get("status") or body)
        return str(error or body)

    # ------------------------------------------------------------------
    # ITabularProvider implementation
    # ------------------------------------------------------------------

    async def get_info(self, spreadsheet_id: str) -> SpreadsheetInfo:
        data = await self._request(
            "GET",
            f"{self._base_url}/{spreadsheet_id}",
            params={"fields": "properties.title,sheets.properties"},
        )
        tabs = [_tab_from_properties(s.get("properties", {})) for s in data.get("sheets", [])]
        return SpreadsheetInfo(
            spreadsheet_id=spreadsheet_id,
            title=data.get("properties", {}).get("title", ""),
            tabs=tabs,
        )

    async def read_range(self, spreadsheet_id: str, range_: str) -> list[list[Any]]:
        data = await self._request("GET", self._values_url(spreadsheet_id, range_))
        return data.get("values", [])

    async def write_range(
        self, spreadsheet_id: str, range_: str, values: list[list[Any]]
    ) -> int:
        data = await self._request(
            "PUT",
            self._values_url(spreadsheet_id, range_),
            params={"valueInputOption": "USER_ENTERED"},
            json={"values": values},
        )
        updated = data.get("updatedCells", 0)
        logger.debug("sheet_range_written", spreadsheet_id=spreadsheet_id, range=range_, cells=updated)
        return updated

    async def append_rows(
        self, spreadsheet_id: str, range_: str, values: list[list[Any]]
    ) -> int:
        data = await self._request(
            "POST",
            self._values_url(spreadsheet_id, range_, ":append"),
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": values},
        )
        return data.get("updates", {}).get("updatedRows", len(values))

    async def update_cell(self, spreadsheet_id: str, cell: str, value: Any) -> None:
        await self.write_range(spreadsheet_id, cell, [[value]])

    async def clear_range(self, spreadsheet_id: str, range_: str) -> None:
        await self._request("POST", self._values_url(spreadsheet_id, range_, ":clear"), json={})

    async def insert_columns(
        self, spreadsheet_id: str, tab_id: int, index: int, count: int = 1
    ) -> None:
        await self._request(
            "POST",
            f"{self._base_url}/{spreadsheet_id}:batchUpdate",
            json={
                "requests": [
                    {
                        "insertDimension": {
                            "range": {
                                "sheetId": tab_id,
                                "dimension": "COLUMNS",
                                "startIndex": index,
                                "endIndex": index + count,
                            },
                            "inheritFromBefore": False,
                        }
                    }
                ]
            },
        )
        logger.info("sheet_columns_inserted", spreadsheet_id=spreadsheet_id, index=index, count=count)

    async def add_tab(self, spreadsheet_id: str, title: str) -> SheetTab:
        data = await self._request(
            "POST",
            f"{self._base_url}/{spreadsheet_id}:batchUpdate",
            json={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        )
        replies = data.get("replies") or [{}]
        return _tab_from_properties(replies[0].get("addSheet", {}).get("properties", {"title": title}))

    def get_provider_name(self) -> str:
        return _PROVIDER
