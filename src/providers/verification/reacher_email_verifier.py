"""Email verification backed by a self-hosted Reacher backend.

Reacher answers ``POST /v1/check_email`` with an ``is_reachable`` verdict
(safe / risky / invalid / unknown) plus SMTP and misc details, which are
mapped onto the status strings written into the leads sheet.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.verification_provider import IEmailVerifier
from src.models.verification import BackendStatus, VerificationResult, VerificationStatus
from src.providers.verification._http import probe_backend

logger = structlog.get_logger(logger_name=__name__)

_VERIFY_TIMEOUT = 30.0


def map_reacher_response(email: str, result: Any) -> VerificationResult:
    """Translate a Reacher response body into a :class:`VerificationResult`.

    A body that is not a JSON object becomes an error result.
    """
    if not isinstance(result, dict):
        return VerificationResult(
            value=email,
            status="❌ Error",
            status_code=VerificationStatus.ERROR.value,
            details={"error": "Unexpected response from email backend"},
        )
    smtp = result.get("smtp") or {}
    misc = result.get("misc") or {}
    is_reachable = result.get("is_reachable") or "unknown"
    is_deliverable = bool(smtp.get("is_deliverable"))
    is_catch_all = bool(smtp.get("is_catch_all"))
    is_disposable = bool(misc.get("is_disposable"))

    if is_reachable == "safe" and is_deliverable:
        status, code = "✅ Safe", VerificationStatus.SAFE.value
    elif is_reachable == "risky" and is_catch_all:
        status, code = "⚠️ Catch-all", VerificationStatus.CATCH_ALL.value
    elif is_reachable == "risky":
        status, code = "⚠️ Risky", VerificationStatus.RISKY.value
    elif is_reachable == "invalid":
        status, code = "❌ Invalid", VerificationStatus.INVALID.value
    elif is_reachable == "unknown":
        status, code = "❓ Unknown", VerificationStatus.UNKNOWN.value
    elif is_disposable:
        status, code = "🗑️ Disposable", VerificationStatus.DISPOSABLE.value
    else:
        status, code = f"❓ {is_reachable}", str(is_reachable)

    return VerificationResult(
        value=email,
        status=status,
        status_code=code,
        details={
            "isReachable": is_reachable,
            "isDeliverable": is_deliverable,
            "isCatchAll": is_catch_all,
            "isDisposable": is_disposable,
        },
    )


class ReacherEmailVerifier(IEmailVerifier):
    """Email verifier calling a Reacher HTTP backend."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._url = settings.email_verifier_url
        self._image = settings.email_backend_image
        self._port = settings.email_backend_port
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(_VERIFY_TIMEOUT))

    async def verify(self, email: str) -> VerificationResult:
        email = (email or "").strip()
        if not email:
            return VerificationResult(value="", status="", status_code=VerificationStatus.EMPTY.value)

        try:
            response = await self._client.post(
                self._url, json={"to_email": email}, timeout=_VERIFY_TIMEOUT
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("email_verification_failed", email=email, error=str(exc))
            return VerificationResult(
                value=email,
                status="❌ Error",
                status_code=VerificationStatus.ERROR.value,
                details={"error": str(exc)},
            )
        return map_reacher_response(email, body)

    async def check_available(self) -> BackendStatus:
        return await probe_backend(
            self._client,
            self._url,
            {"to_email": "test@test.com"},
            "Email verification backend not running. Start with: "
            f"docker run -p {self._port}:{self._port} {self._image}",
        )
