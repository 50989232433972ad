"""Abstract base class for spreadsheet providers.

Ranges use A1 notation (``'Leads'!B:C``, ``Sheet1!A1``).  Values are
lists of rows, each a list of cell values; trailing empty cells may be
omitted by the provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.sheet import SheetTab, SpreadsheetInfo


# Concrete implementations: GoogleSheetsProvider
# Located in: src/providers/sheets/
class ITabularProvider(ABC):
    """Contract for reading and mutating spreadsheets.

    Every method raises :class:`~src.utils.errors.SheetsError` on failure and
    :class:`~src.utils.errors.QuotaExceededError` when the remote API rejects
    the call for rate or quota reasons.
    """

    @abstractmethod
    async def get_info(self, spreadsheet_id: str) -> SpreadsheetInfo:
        """Return the spreadsheet title and its tabs."""

    @abstractmethod
    async def read_range(self, spreadsheet_id: str, range_: str) -> list[list[Any]]:
        """Return the values in *range_* (empty list when blank)."""

    @abstractmethod
    async def write_range(
        self, spreadsheet_id: str, range_: str, values: list[list[Any]]
    ) -> int:
        """Overwrite *range_* with *values*; return the number of cells updated."""

    @abstractmethod
    async def append_rows(
        self, spreadsheet_id: str, range_: str, values: list[list[Any]]
    ) -> int:
        """Append rows after the last filled row of *range_*; return rows appended."""

    @abstractmethod
    async def update_cell(self, spreadsheet_id: str, cell: str, value: Any) -> None:
        """Set a single cell."""

    @abstractmethod
    async def clear_range(self, spreadsheet_id: str, range_: str) -> None:
        """Clear the values in *range_*."""

    @abstractmethod
    async def insert_columns(
        self, spreadsheet_id: str, tab_id: int, index: int, count: int = 1
    ) -> None:
        """Insert *count* empty columns before 0-based column *index* of tab *tab_id*."""

    @abstractmethod
    async def add_tab(self, spreadsheet_id: str, title: str) -> SheetTab:
        """Create a new tab and return its metadata."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"google_sheets"``."""
