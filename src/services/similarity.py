"""Vector similarity helpers used by retrieval.

Stored embeddings arrive as JSON text from the document store and may be
missing, truncated or produced by a different model.  Every function here
degrades to a neutral value instead of raising, so one bad row can never
break a search.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

import numpy as np

T = TypeVar("T")


def parse_embedding(raw: Any) -> list[float]:
    """Decode a stored embedding; malformed or missing values yield ``[]``."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        values = raw
    else:
        try:
            values = json.loads(raw)
        except (TypeError, ValueError):
            return []
    if not isinstance(values, list):
        return []
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        return []


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity of two vectors, clipped to ``[-1, 1]``.

    Returns 0.0 when either vector is missing, empty, non-numeric, of a
    different length, or has zero magnitude.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    try:
        va = np.asarray(a, dtype=np.float64)
        vb = np.asarray(b, dtype=np.float64)
    except (TypeError, ValueError):
        return 0.0
    if va.ndim != 1 or vb.ndim != 1:
        return 0.0

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0 or not np.isfinite(norm):
        return 0.0
    score = float(np.dot(va, vb) / norm)
    if not np.isfinite(score):
        return 0.0
    return float(np.clip(score, -1.0, 1.0))


def rank_top_k(
    items: Iterable[T],
    score_fn: Callable[[T], float],
    k: int | None = None,
) -> list[tuple[T, float]]:
    """Score *items* and return the best *k* as ``(item, score)``, highest first.

    The sort is stable: equal scores keep their input order.  ``k=None``
    returns everything.
    """
    scored = [(item, score_fn(item)) for item in items]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    if k is None:
        return scored
    return scored[: max(k, 0)]
