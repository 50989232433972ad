"""Abstract base class for remote source fetching (Google exports, web URLs)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import RemoteContent


# Concrete implementations: GoogleSourceFetcher
# Located in: src/providers/sources/
class IRemoteSourceFetcher(ABC):
    """Contract for pulling text (or raw files) from remote sources."""

    @abstractmethod
    async def fetch_google_doc(self, doc_id: str) -> RemoteContent:
        """Return a Google Doc's title and plain-text body.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the document is not reachable (e.g. not shared publicly).
        """

    @abstractmethod
    async def fetch_google_sheet(self, spreadsheet_id: str) -> RemoteContent:
        """Return a spreadsheet's title, every tab rendered as text, and tab titles."""

    @abstractmethod
    async def fetch_url(self, url: str) -> tuple[bytes, str, str]:
        """Download *url*; return ``(content, file_name, mime_type)``."""
