"""A1-notation column helpers.

Columns are 0-indexed: ``A`` is 0, ``Z`` is 25, ``AA`` is 26.
"""

from __future__ import annotations

import re

_COLUMN_RE = re.compile(r"^[A-Za-z]{1,3}$")


def is_column_letter(value: str) -> bool:
    """Return True if *value* looks like an A1 column reference (``A`` .. ``ZZZ``)."""
    return bool(_COLUMN_RE.match(value or ""))


def col_letter_to_index(letter: str) -> int:
    """Convert a column letter (``"C"``, ``"AB"``) to its 0-based index.

    Raises
    ------
    ValueError
        If *letter* is not an A1 column reference.
    """
    if not is_column_letter(letter):
        raise ValueError(f"Invalid column letter: {letter!r}")
    index = 0
    for char in letter.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def index_to_col_letter(index: int) -> str:
    """Convert a 0-based column index back to its letter form."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative: {index}")
    letters = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def qualify_range(sheet_name: str | None, ref: str) -> str:
    """Prefix an A1 reference with a quoted tab name: ``'My Tab'!A1:B2``.

    References that already name a tab are returned unchanged.
    """
    if not sheet_name or "!" in ref:
        return ref
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!{ref}"
