"""Abstract base class for file text extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


# Concrete implementations: FileTextExtractor
# Located in: src/providers/extraction/
class ITextExtractor(ABC):
    """Contract for turning an uploaded file into plain text."""

    @abstractmethod
    async def extract(self, path: Path, mime_type: str) -> str:
        """Return the text content of the file at *path*.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the mime type is unsupported or the file cannot be parsed.
        """

    @abstractmethod
    def is_supported(self, mime_type: str) -> bool:
        """Return ``True`` if :meth:`extract` handles *mime_type*."""
