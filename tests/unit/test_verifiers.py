"""Unit tests for the email/phone verification backends (httpx mocked)."""

from __future__ import annotations

import json

import httpx
import pytest

from src.config.settings import Settings
from src.providers.verification.phone_verifiers import (
    LocalPhoneVerifier,
    NumVerifyPhoneVerifier,
    map_local_phone_response,
    map_numverify_response,
)
from src.providers.verification.reacher_email_verifier import (
    ReacherEmailVerifier,
    map_reacher_response,
)

# ── Fixtures ──────────────────────────────────────────────────────────


def _settings(**overrides: object) -> Settings:
    return Settings(_env_file=None, **overrides)


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Reacher ───────────────────────────────────────────────────────────


class TestReacherMapping:
    @pytest.mark.parametrize(
        ("body", "status", "code"),
        [
            ({"is_reachable": "safe", "smtp": {"is_deliverable": True}}, "✅ Safe", "safe"),
            ({"is_reachable": "risky", "smtp": {"is_catch_all": True}}, "⚠️ Catch-all", "catch_all"),
            ({"is_reachable": "risky"}, "⚠️ Risky", "risky"),
            ({"is_reachable": "invalid"}, "❌ Invalid", "invalid"),
            ({}, "❓ Unknown", "unknown"),
            ({"is_reachable": "safe", "smtp": {"is_deliverable": False}, "misc": {"is_disposable": True}}, "🗑️ Disposable", "disposable"),
            ({"is_reachable": "weird"}, "❓ weird", "weird"),
        ],
    )
    def test_status_mapping(self, body: dict, status: str, code: str) -> None:
        result = map_reacher_response("a@example.com", body)
        assert (result.status, result.status_code) == (status, code)

    @pytest.mark.parametrize("body", [[], "ok", None, 3])
    def test_non_object_body_is_an_error_result(self, body: object) -> None:
        result = map_reacher_response("a@example.com", body)

        assert (result.status, result.status_code) == ("❌ Error", "error")
        assert result.details == {"error": "Unexpected response from email backend"}


class TestReacherEmailVerifier:
    @pytest.mark.asyncio()
    async def test_posts_address(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"is_reachable": "invalid"})

        async with _client(handler) as client:
            result = await ReacherEmailVerifier(_settings(), client).verify(" a@example.com ")

        assert seen == [{"to_email": "a@example.com"}]
        assert result.status == "❌ Invalid"

    @pytest.mark.asyncio()
    async def test_backend_failure_becomes_error_result(self) -> None:
        async with _client(lambda request: httpx.Response(500)) as client:
            result = await ReacherEmailVerifier(_settings(), client).verify("a@example.com")

        assert (result.status, result.status_code) == ("❌ Error", "error")

    @pytest.mark.asyncio()
    async def test_array_body_becomes_error_result(self) -> None:
        async with _client(lambda request: httpx.Response(200, json=[])) as client:
            result = await ReacherEmailVerifier(_settings(), client).verify("a@example.com")

        assert result.status_code == "error"

    @pytest.mark.asyncio()
    async def test_empty_value(self) -> None:
        async with _client(lambda request: httpx.Response(200)) as client:
            result = await ReacherEmailVerifier(_settings(), client).verify("  ")

        assert (result.status, result.status_code) == ("", "empty")

    @pytest.mark.asyncio()
    async def test_refused_connection_means_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            status = await ReacherEmailVerifier(_settings(), client).check_available()

        assert status.available is False
        assert "docker run -p 8080:8080 reacherhq/backend:latest" in (status.error or "")

    @pytest.mark.asyncio()
    async def test_any_response_means_available(self) -> None:
        async with _client(lambda request: httpx.Response(400)) as client:
            status = await ReacherEmailVerifier(_settings(), client).check_available()

        assert status.available is True


# ── Phone ─────────────────────────────────────────────────────────────


class TestLocalPhone:
    def test_valid_mapping(self) -> None:
        result = map_local_phone_response("+14155551234", {"is_valid": True, "type": "MOBILE"})
        assert (result.status, result.status_code) == ("✅ Valid (MOBILE)", "valid")

    def test_invalid_mapping(self) -> None:
        result = map_local_phone_response("123", {"is_valid": False})
        assert (result.status, result.status_code) == ("❌ Invalid format", "invalid")

    def test_non_object_body_is_an_error_result(self) -> None:
        result = map_local_phone_response("123", ["valid"])
        assert (result.status, result.status_code) == ("❌ Error", "error")

    @pytest.mark.asyncio()
    async def test_posts_number(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"phone": "+1 415 555 1234"}
            return httpx.Response(200, json={"is_valid": True, "type": "FIXED_LINE"})

        async with _client(handler) as client:
            result = await LocalPhoneVerifier(_settings(), client).verify("+1 415 555 1234")

        assert result.status == "✅ Valid (FIXED_LINE)"


class TestNumVerify:
    @pytest.mark.parametrize(
        ("body", "status", "code"),
        [
            ({"valid": False}, "❌ Not in service", "not_in_service"),
            ({"valid": True, "line_type": "mobile", "carrier": "Acme"}, "✅ Mobile (Acme)", "mobile"),
            ({"valid": True, "line_type": "landline"}, "📞 Landline", "landline"),
            ({"valid": True, "line_type": "voip", "carrier": "Skype"}, "⚠️ VOIP (Skype)", "voip"),
            ({"valid": True, "line_type": "toll_free"}, "📞 Toll-free", "toll_free"),
            ({"valid": True, "line_type": "special_services"}, "📞 Special", "special"),
            ({"valid": True, "line_type": "pager"}, "✅ Valid (pager)", "valid"),
            ({"valid": True}, "✅ Valid", "valid"),
            ({"error": {"info": "Invalid access key"}}, "❌ Invalid access key", "error"),
        ],
    )
    def test_status_mapping(self, body: dict, status: str, code: str) -> None:
        result = map_numverify_response("+14155551234", body)
        assert (result.status, result.status_code) == (status, code)

    def test_non_object_body_is_an_error_result(self) -> None:
        result = map_numverify_response("+14155551234", "rate limited")
        assert result.status_code == "error"
        assert result.details == {"error": "Unexpected response from NumVerify"}

    @pytest.mark.asyncio()
    async def test_missing_key_is_an_error_result(self) -> None:
        async with _client(lambda request: httpx.Response(200)) as client:
            verifier = NumVerifyPhoneVerifier(_settings(numverify_api_key=""), client)
            result = await verifier.verify("+14155551234")
            status = await verifier.check_available()

        assert result.status_code == "error"
        assert "NUMVERIFY_API_KEY" in result.details["error"]
        assert status.available is False

    @pytest.mark.asyncio()
    async def test_strips_formatting_and_sends_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["number"] == "14155551234"
            assert request.url.params["access_key"] == "test-key"
            return httpx.Response(200, json={"valid": True, "line_type": "mobile"})

        async with _client(handler) as client:
            verifier = NumVerifyPhoneVerifier(_settings(numverify_api_key="test-key"), client)
            result = await verifier.verify("+1 (415) 555-1234")

        assert result.status == "✅ Mobile"
