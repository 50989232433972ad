"""File text extraction for uploaded documents.

Dispatches on mime type:

    PDF          → PyMuPDF (fitz), page text joined with blank lines
    DOCX / DOC   → python-docx paragraphs
    XLSX / XLS   → openpyxl, each worksheet rendered as CSV under a
                   ``--- Sheet: <name> ---`` header
    CSV / TXT    → decoded as UTF-8 (invalid bytes replaced)
    PNG / JPEG   → placeholder text (no OCR configured)

Parsing libraries are synchronous, so each parse runs in a worker thread
via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import csv
import io
from pathlib import Path

import fitz  # PyMuPDF
import openpyxl
import structlog
from docx import Document as DocxDocument

from src.interfaces.text_extractor import ITextExtractor
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PDF = "application/pdf"
_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
_DOC = "application/msword"
_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
_XLS = "application/vnd.ms-excel"
_IMAGE_TYPES = frozenset({"image/png", "image/jpeg"})
_TEXT_TYPES = frozenset({"text/plain", "text/csv"})


class FileTextExtractor(ITextExtractor):
    """Extracts plain text from uploaded files on disk."""

    def is_supported(self, mime_type: str) -> bool:
        return mime_type in {_PDF, _DOCX, _DOC, _XLSX, _XLS} | _IMAGE_TYPES | _TEXT_TYPES

    async def extract(self, path: Path, mime_type: str) -> str:
        if not self.is_supported(mime_type):
            raise ExtractionError(message=f"Unsupported file type: {mime_type}")

        if mime_type in _IMAGE_TYPES:
            return f"[Image file: {path.name}. Text extraction requires OCR configuration.]"

        try:
            if mime_type == _PDF:
                text = await asyncio.to_thread(self._extract_pdf, path)
            elif mime_type in (_DOCX, _DOC):
                text = await asyncio.to_thread(self._extract_docx, path)
            elif mime_type in (_XLSX, _XLS):
                text = await asyncio.to_thread(self._extract_workbook, path)
            else:
                text = path.read_bytes().decode("utf-8", errors="replace")
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to read {mime_type} file: {exc}",
            ) from exc

        logger.info("text_extracted", file=path.name, mime_type=mime_type, characters=len(text))
        return text

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(path: Path) -> str:
        with fitz.open(str(path)) as doc:
            pages = [page.get_text() for page in doc]
        return "\n\n".join(page for page in pages if page.strip())

    @staticmethod
    def _extract_docx(path: Path) -> str:
        doc = DocxDocument(str(path))
        return "\n".join(para.text for para in doc.paragraphs)

    @staticmethod
    def _extract_workbook(path: Path) -> str:
        workbook = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
        try:
            parts: list[str] = []
            for worksheet in workbook.worksheets:
                buffer = io.StringIO()
                writer = csv.writer(buffer, lineterminator="\n")
                for row in worksheet.iter_rows(values_only=True):
                    writer.writerow(["" if cell is None else cell for cell in row])
                parts.append(f"\n\n--- Sheet: {worksheet.title} ---\n{buffer.getvalue()}")
            return "".join(parts)
        finally:
            workbook.close()
