"""Character-window text chunking with sentence/line boundary snapping.

Splits document text into overlapping :class:`~src.models.document.TextSpan`
windows sized for the embedding model (1000 characters with 200 characters
of overlap by default).

Each window is proposed at ``start + chunk_size``.  If that lands inside the
text, the window end is pulled back to just after the last ``.`` or newline
at or before the proposed end, provided that break point sits past the
window's midpoint.  Otherwise the window is cut hard at ``chunk_size``.  The
next window starts ``overlap`` characters before the previous end.

Offsets always refer to the raw slice; the chunk text is that slice with
surrounding whitespace stripped.  The output is fully determined by
``(chunk_size, overlap, text)``, so chunk rows can be re-derived at any time.
"""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from src.models.document import TextSpan

logger = structlog.get_logger(logger_name=__name__)


class TextChunker:
    """Splits text into overlapping character windows.

    Parameters
    ----------
    chunk_size:
        Maximum characters per window (default 1000).
    overlap:
        Characters shared by consecutive windows (default 200).  An overlap
        at or above ``chunk_size`` still terminates: the next window is
        forced to start where the previous one ended.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {overlap}")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def iter_chunks(self, text: str) -> Iterator[TextSpan]:
        """Lazily yield windows over *text*.

        Empty text yields exactly one empty span ``(0, 0)``.
        """
        length = len(text)
        if length == 0:
            yield TextSpan(text="", start_index=0, end_index=0)
            return

        start = 0
        while True:
            end = min(start + self._chunk_size, length)

            if end < length:
                break_point = max(text.rfind(".", 0, end + 1), text.rfind("\n", 0, end + 1))
                if break_point > start + self._chunk_size / 2:
                    end = break_point + 1

            yield TextSpan(text=text[start:end].strip(), start_index=start, end_index=end)

            if end >= length:
                return

            next_start = max(end - self._overlap, 0)
            # Forward-progress guard for overlap >= window length.
            if next_start <= start:
                next_start = end
            start = next_start

    def chunk(self, text: str) -> list[TextSpan]:
        """Return every window over *text* as a list."""
        spans = list(self.iter_chunks(text))
        logger.debug("text_chunked", characters=len(text), chunks=len(spans))
        return spans
