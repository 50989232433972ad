"""Client knowledge agent API layer - routes, schemas, SSE, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    AgentQueryRequest,
    AgentQueryResponse,
    ChatResponse,
    DocumentOut,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    SearchResponse,
)
from src.api.sse import format_sse, sse_response

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "format_sse",
    "sse_response",
    "AgentQueryRequest",
    "AgentQueryResponse",
    "ChatResponse",
    "DocumentOut",
    "ErrorResponse",
    "HealthResponse",
    "SearchRequest",
    "SearchResponse",
]
