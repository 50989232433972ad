"""Server-sent event rendering for streaming endpoints."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi.responses import StreamingResponse

from src.models.verification import VerificationEvent

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable proxy buffering (Nginx)
}


def format_sse(event: VerificationEvent) -> str:
    """Render one event as ``event: <name>\\ndata: <json>\\n\\n``."""
    return f"event: {event.event}\ndata: {json.dumps(event.data, default=str)}\n\n"


async def _render(events: AsyncIterator[VerificationEvent]) -> AsyncIterator[str]:
    try:
        async for event in events:
            yield format_sse(event)
    finally:
        # Closing the source generator stops it from starting further rows.
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


def sse_response(events: AsyncIterator[VerificationEvent]) -> StreamingResponse:
    return StreamingResponse(_render(events), media_type="text/event-stream", headers=SSE_HEADERS)
