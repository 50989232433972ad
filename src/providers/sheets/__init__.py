"""Spreadsheet providers."""

from src.providers.sheets.google_sheets_provider import GoogleSheetsProvider

__all__ = ["GoogleSheetsProvider"]
