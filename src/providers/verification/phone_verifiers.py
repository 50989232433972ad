"""Phone verification backends.

Two interchangeable verifiers:

- :class:`LocalPhoneVerifier` posts to a local libphonenumber-style
  validator (``POST /validate {"phone": ...}``) and reports format validity.
- :class:`NumVerifyPhoneVerifier` calls the NumVerify API for line type and
  carrier.  It needs ``NUMVERIFY_API_KEY``; without it every lookup returns
  an error result instead of raising.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.verification_provider import IPhoneVerifier
from src.models.verification import BackendStatus, VerificationResult, VerificationStatus
from src.providers.verification._http import probe_backend

logger = structlog.get_logger(logger_name=__name__)

_VERIFY_TIMEOUT = 30.0
_FORMATTING_CHARS = re.compile(r"[\s\-()+]")


def _empty() -> VerificationResult:
    return VerificationResult(value="", status="", status_code=VerificationStatus.EMPTY.value)


def _error(phone: str, message: str) -> VerificationResult:
    return VerificationResult(
        value=phone,
        status="❌ Error",
        status_code=VerificationStatus.ERROR.value,
        details={"error": message},
    )


def map_local_phone_response(phone: str, result: Any) -> VerificationResult:
    if not isinstance(result, dict):
        return _error(phone, "Unexpected response from phone backend")
    is_valid = bool(result.get("is_valid"))
    phone_type = result.get("type") or ""
    if is_valid:
        status, code = f"✅ Valid ({phone_type})", VerificationStatus.VALID.value
    else:
        status, code = "❌ Invalid format", VerificationStatus.INVALID.value
    return VerificationResult(
        value=phone,
        status=status,
        status_code=code,
        details={
            "isValid": is_valid,
            "isPossible": result.get("is_possible"),
            "phoneType": phone_type,
            "formatted": result.get("formatted"),
            "country": result.get("country"),
        },
    )


def map_numverify_response(phone: str, result: Any) -> VerificationResult:
    if not isinstance(result, dict):
        return _error(phone, "Unexpected response from NumVerify")
    error = result.get("error")
    if error:
        info = error.get("info") if isinstance(error, dict) else None
        return VerificationResult(
            value=phone,
            status=f"❌ {info or 'API error'}",
            status_code=VerificationStatus.ERROR.value,
            details={"error": error},
        )

    is_valid = bool(result.get("valid"))
    line_type = result.get("line_type") or ""
    carrier = result.get("carrier") or ""
    suffix = f" ({carrier})" if carrier else ""

    if not is_valid:
        status, code = "❌ Not in service", VerificationStatus.NOT_IN_SERVICE.value
    elif line_type == "mobile":
        status, code = f"✅ Mobile{suffix}", VerificationStatus.MOBILE.value
    elif line_type == "landline":
        status, code = f"📞 Landline{suffix}", VerificationStatus.LANDLINE.value
    elif line_type == "voip":
        status, code = f"⚠️ VOIP{suffix}", VerificationStatus.VOIP.value
    elif line_type == "toll_free":
        status, code = "📞 Toll-free", VerificationStatus.TOLL_FREE.value
    elif line_type == "special_services":
        status, code = "📞 Special", VerificationStatus.SPECIAL.value
    else:
        status = f"✅ Valid ({line_type})" if line_type else "✅ Valid"
        code = VerificationStatus.VALID.value

    return VerificationResult(
        value=phone,
        status=status,
        status_code=code,
        details={
            "isValid": is_valid,
            "lineType": line_type,
            "carrier": carrier,
            "country": result.get("country_name"),
            "countryCode": result.get("country_code"),
            "location": result.get("location"),
        },
    )


class LocalPhoneVerifier(IPhoneVerifier):
    """Format validation via the local phone validation server."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._url = settings.phone_verifier_url
        self._command = settings.phone_backend_command
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(_VERIFY_TIMEOUT))

    async def verify(self, phone: str) -> VerificationResult:
        phone = (phone or "").strip()
        if not phone:
            return _empty()
        try:
            response = await self._client.post(self._url, json={"phone": phone}, timeout=_VERIFY_TIMEOUT)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("phone_verification_failed", phone=phone, error=str(exc))
            return _error(phone, str(exc))
        return map_local_phone_response(phone, body)

    async def check_available(self) -> BackendStatus:
        return await probe_backend(
            self._client,
            self._url,
            {"phone": "+14155551234"},
            f"Phone verification backend not running. Start with: {self._command}",
        )


class NumVerifyPhoneVerifier(IPhoneVerifier):
    """Carrier and line-type lookup via the NumVerify API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._url = settings.numverify_url
        self._api_key = settings.numverify_api_key
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(_VERIFY_TIMEOUT))

    async def verify(self, phone: str) -> VerificationResult:
        phone = (phone or "").strip()
        if not phone:
            return _empty()
        if not self._api_key:
            return _error(phone, "NumVerify API key not configured. Set NUMVERIFY_API_KEY")

        try:
            response = await self._client.get(
                self._url,
                params={
                    "access_key": self._api_key,
                    "number": _FORMATTING_CHARS.sub("", phone),
                    "format": 1,
                },
                timeout=_VERIFY_TIMEOUT,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("numverify_lookup_failed", phone=phone, error=str(exc))
            return _error(phone, str(exc))
        return map_numverify_response(phone, body)

    async def check_available(self) -> BackendStatus:
        if not self._api_key:
            return BackendStatus(available=False, error="NumVerify API key not configured")
        return BackendStatus(available=True)
