"""Remote source fetchers (Google Docs/Sheets exports, web URLs)."""

from src.providers.sources.google_source_fetcher import GoogleSourceFetcher

__all__ = ["GoogleSourceFetcher"]
