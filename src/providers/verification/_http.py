"""Shared HTTP probing for verification backends."""

from __future__ import annotations

from typing import Any

import httpx

from src.models.verification import BackendStatus

_PROBE_TIMEOUT = 5.0


async def probe_backend(
    client: httpx.AsyncClient, url: str, payload: dict[str, Any], hint: str
) -> BackendStatus:
    """POST a test payload; only a refused/unresolvable connection means unavailable."""
    try:
        await client.post(url, json=payload, timeout=_PROBE_TIMEOUT)
    except httpx.ConnectError:
        return BackendStatus(available=False, error=hint)
    except httpx.HTTPError:
        # The socket answered (timeout, protocol error); the backend is up.
        return BackendStatus(available=True)
    return BackendStatus(available=True)
