"""Unit tests for error-to-status mapping and server-sent event rendering."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware, status_for
from src.api.sse import format_sse
from src.models.verification import VerificationEvent
from src.utils.errors import (
    ExtractionError,
    KnowledgeAgentError,
    NotFoundError,
    QuotaExceededError,
    StoreError,
    VerificationBackendUnavailableError,
)

# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def client() -> TestClient:
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/missing")
    async def missing() -> dict:
        raise NotFoundError(message="Client not found: ghost")

    @app.get("/store")
    async def store_failure() -> dict:
        raise StoreError(message="disk full", provider_name="sqlite")

    @app.get("/ok")
    async def ok() -> dict:
        return {"status": "ok"}

    return TestClient(app)


# ── Tests ─────────────────────────────────────────────────────────────


class TestStatusFor:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (NotFoundError(), 404),
            (ExtractionError(), 400),
            (VerificationBackendUnavailableError(), 503),
            (QuotaExceededError(), 500),
            (KnowledgeAgentError(), 500),
        ],
    )
    def test_mapping(self, error: KnowledgeAgentError, expected: int) -> None:
        assert status_for(error) == expected


class TestErrorHandlingMiddleware:
    def test_not_found_body(self, client: TestClient) -> None:
        response = client.get("/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "NotFoundError", "detail": "Client not found: ghost"}

    def test_provider_name_is_not_leaked(self, client: TestClient) -> None:
        response = client.get("/store")

        assert response.status_code == 500
        assert response.json()["detail"] == "disk full"

    def test_success_passes_through(self, client: TestClient) -> None:
        assert client.get("/ok").json() == {"status": "ok"}


class TestRequestLoggingMiddleware:
    def test_request_id_generated(self, client: TestClient) -> None:
        response = client.get("/ok")

        assert len(response.headers["X-Request-ID"]) == 12

    def test_incoming_request_id_is_echoed(self, client: TestClient) -> None:
        response = client.get("/ok", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    def test_error_responses_carry_request_id(self, client: TestClient) -> None:
        response = client.get("/missing", headers={"X-Request-ID": "req-9"})

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "req-9"


class TestFormatSse:
    def test_event_and_json_data(self) -> None:
        event = VerificationEvent(event="email_progress", data={"current": 1, "email": "a@example.com"})

        assert format_sse(event) == (
            'event: email_progress\ndata: {"current": 1, "email": "a@example.com"}\n\n'
        )

    def test_empty_payload(self) -> None:
        assert format_sse(VerificationEvent(event="start")) == "event: start\ndata: {}\n\n"
