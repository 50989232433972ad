"""Leads verification models: per-value results, run options and SSE events."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.utils.columns import is_column_letter


class VerificationStatus(str, Enum):
    SAFE = "safe"
    CATCH_ALL = "catch_all"
    RISKY = "risky"
    INVALID = "invalid"
    UNKNOWN = "unknown"
    DISPOSABLE = "disposable"
    VALID = "valid"
    MOBILE = "mobile"
    LANDLINE = "landline"
    VOIP = "voip"
    TOLL_FREE = "toll_free"
    SPECIAL = "special"
    NOT_IN_SERVICE = "not_in_service"
    ERROR = "error"
    EMPTY = "empty"
    SKIPPED = "skipped"


class VerificationResult(BaseModel):
    """Outcome of verifying one email address or phone number.

    ``status`` is the human-readable string written into the sheet;
    ``status_code`` is the machine code.  Unrecognised backend values keep
    their raw code string, so the field is typed ``str``.
    """

    model_config = ConfigDict(frozen=True)

    value: str
    status: str
    status_code: str
    details: dict[str, Any] = Field(default_factory=dict)


class BackendStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: bool
    error: str | None = None


class VerificationOptions(BaseModel):
    """Validated request options for a verification run."""

    model_config = ConfigDict(frozen=True)

    email_column: str | None = None
    phone_column: str | None = None
    sheet_name: str | None = None
    use_numverify: bool = False

    @field_validator("email_column", "phone_column", mode="before")
    @classmethod
    def _validate_column(cls, value: object) -> str | None:
        if value is None or value == "":
            return None
        text = str(value).strip()
        if not is_column_letter(text):
            raise ValueError(f"Invalid column letter: {text!r}")
        return text.upper()

    @field_validator("sheet_name", mode="before")
    @classmethod
    def _blank_sheet(cls, value: object) -> str | None:
        if value is None or str(value).strip() == "":
            return None
        return str(value)

    @model_validator(mode="after")
    def _require_column(self) -> "VerificationOptions":
        if not self.email_column and not self.phone_column:
            raise ValueError("At least one of email_column or phone_column is required")
        return self


class VerificationEvent(BaseModel):
    """One server-sent event: a name and a JSON payload."""

    model_config = ConfigDict(frozen=True)

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
