"""Text extraction providers."""

from src.providers.extraction.file_text_extractor import FileTextExtractor

__all__ = ["FileTextExtractor"]
