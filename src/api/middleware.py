"""HTTP middleware for the knowledge agent API.

Three pieces, installed by ``create_app`` in main.py:

- :func:`configure_cors` for the dashboard origins in ``CORS_ORIGINS``;
- :class:`RequestLoggingMiddleware`, one ``http_request`` event per call,
  with a request id bound into structlog's context vars so that every
  event logged while serving the request carries it;
- :class:`ErrorHandlingMiddleware`, which turns ``KnowledgeAgentError``
  into an ``ErrorResponse`` body with a status picked by :func:`status_for`.

# ─── ORDER OF EXECUTION (Junior Developer Guide) ──────────────────────
#
#   application.add_middleware(ErrorHandlingMiddleware)    # inner
#   application.add_middleware(RequestLoggingMiddleware)   # outer
#
# Starlette runs the most recently added middleware first, so a request
# passes RequestLogging -> ErrorHandling -> route, and the logged status
# is the one the client actually received (404/400/503/500 after error
# mapping, not the raw exception).
#
# SSE responses from /leads/{id}/verify-stream are logged when the
# headers go out; the stream itself reports failures as `error` events.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    ExtractionError,
    KnowledgeAgentError,
    NotFoundError,
    VerificationBackendUnavailableError,
)
from src.utils.logging import bind_context, get_logger, unbind_context

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; the first matching base class wins.  Anything else is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[KnowledgeAgentError], int], ...] = (
    (NotFoundError, 404),
    (ExtractionError, 400),
    (VerificationBackendUnavailableError, 503),
)


def status_for(exc: KnowledgeAgentError) -> int:
    """Return the HTTP status code used for *exc*."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow the dashboard to call the API from another origin.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Origins from ``Settings.get_cors_origins()``.  ``None`` allows any
        origin, which browsers only accept without credentials, so
        cookies and auth headers are enabled for explicit lists only.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allowed_origins is not None,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration; tag the request with an id."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        bind_context(request_id=request_id)
        started = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            unbind_context("request_id")


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``KnowledgeAgentError`` into a JSON :class:`ErrorResponse`.

    Unknown clients and documents answer 404, unreadable or unsupported
    sources 400, and unreachable verification backends 503.  Every other
    application error is a 500 carrying only the error class and message;
    the provider name and traceback stay in the server log.  Exceptions
    outside the hierarchy fall through to Starlette's own 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except KnowledgeAgentError as exc:
            status_code = status_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                status=status_code,
                path=request.url.path,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
