"""Spreadsheet models: connected sheets, tab metadata and the operations log."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SheetTab(BaseModel):
    model_config = ConfigDict(frozen=True)

    sheet_id: int = Field(description="Numeric tab id used by structural updates.")
    title: str
    index: int = 0
    row_count: int = 0
    column_count: int = 0


class SpreadsheetInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    spreadsheet_id: str
    title: str
    tabs: list[SheetTab] = Field(default_factory=list)

    def find_tab(self, title: str) -> SheetTab | None:
        for tab in self.tabs:
            if tab.title == title:
                return tab
        return None


class ConnectedSheet(BaseModel):
    """A spreadsheet linked to a client; unique per (client_id, spreadsheet_id)."""

    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    spreadsheet_id: str
    sheet_url: str = ""
    name: str = ""
    sheet_tabs: list[SheetTab] = Field(default_factory=list)
    last_synced: datetime | None = None

    @property
    def tab_titles(self) -> list[str]:
        return [tab.title for tab in self.sheet_tabs]


class OperationLogEntry(BaseModel):
    """Audit row for a spreadsheet mutation, by the AI agent or a user action."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    spreadsheet_id: str
    operation_type: str
    range: str = ""
    cells_affected: int = 0
    performed_by: str = "ai"
    created_at: datetime = Field(default_factory=_utcnow)
