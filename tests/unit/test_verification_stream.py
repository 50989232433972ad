"""Unit tests for the streaming leads verification controller."""

from __future__ import annotations

import pytest

from src.interfaces.verification_provider import IEmailVerifier, IPhoneVerifier
from src.models.verification import (
    BackendStatus,
    VerificationEvent,
    VerificationOptions,
    VerificationResult,
)
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from src.services.verification_stream import (
    VerificationStreamController,
    build_preview,
    is_quota_error,
    shifted_index,
)
from src.utils.errors import QuotaExceededError, SheetsError
from tests.fakes import InMemoryTabularProvider

# ── Fixtures ──────────────────────────────────────────────────────────


class StubEmailVerifier(IEmailVerifier):
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.verified: list[str] = []

    async def verify(self, email: str) -> VerificationResult:
        self.verified.append(email)
        return VerificationResult(value=email, status="✅ Safe", status_code="safe")

    async def check_available(self) -> BackendStatus:
        if self.available:
            return BackendStatus(available=True)
        return BackendStatus(available=False, error="Email verification backend not running.")


class StubPhoneVerifier(IPhoneVerifier):
    def __init__(self, label: str = "✅ Valid (MOBILE)", available: bool = True) -> None:
        self.label = label
        self.available = available
        self.verified: list[str] = []

    async def verify(self, phone: str) -> VerificationResult:
        self.verified.append(phone)
        return VerificationResult(value=phone, status=self.label, status_code="valid")

    async def check_available(self) -> BackendStatus:
        return BackendStatus(available=self.available, error=None if self.available else "down")


class Sleeper:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _controller(
    tabular: InMemoryTabularProvider,
    email: StubEmailVerifier | None = None,
    phone: StubPhoneVerifier | None = None,
    numverify: StubPhoneVerifier | None = None,
    store: SQLiteDocumentStore | None = None,
    sleeper: Sleeper | None = None,
) -> VerificationStreamController:
    return VerificationStreamController(
        tabular=tabular,
        email_verifier=email or StubEmailVerifier(),
        phone_verifier=phone or StubPhoneVerifier(),
        numverify_verifier=numverify or StubPhoneVerifier(label="✅ Mobile (Acme Telecom)"),
        store=store,
        sleep=sleeper or Sleeper(),
        email_delay=0.3,
        phone_delay=0.1,
        numverify_delay=2.0,
        quota_wait_seconds=60.0,
        max_write_attempts=5,
    )


async def _run(controller: VerificationStreamController, **options: object) -> list[VerificationEvent]:
    return [event async for event in controller.stream("sheet-1", VerificationOptions(**options))]


def _names(events: list[VerificationEvent]) -> list[str]:
    return [event.event for event in events]


# ── Helpers ───────────────────────────────────────────────────────────


class TestHelpers:
    @pytest.mark.parametrize(
        ("index", "insertions", "expected"),
        [(2, [], 2), (2, [2], 3), (5, [2], 6), (1, [2], 1), (6, [2, 4], 8)],
    )
    def test_shifted_index(self, index: int, insertions: list[int], expected: int) -> None:
        assert shifted_index(index, insertions) == expected

    def test_quota_detection(self) -> None:
        assert is_quota_error(QuotaExceededError(message="slow down"))
        assert is_quota_error(SheetsError(message="HTTP 429 Too Many Requests"))
        assert not is_quota_error(SheetsError(message="HTTP 403 Forbidden"))

    @pytest.mark.asyncio()
    async def test_preview(self, tabular: InMemoryTabularProvider) -> None:
        info = await tabular.get_info("sheet-1")
        preview = build_preview(info, "Sheet1", [["Name", ""], ["Ann", "x"], ["Bo"]])

        assert preview["totalRows"] == 2
        assert preview["columns"][1] == {
            "letter": "B",
            "index": 1,
            "header": "Column B",
            "preview": ["x", ""],
        }

    def test_options_require_a_column(self) -> None:
        with pytest.raises(ValueError, match="At least one of email_column or phone_column"):
            VerificationOptions(sheet_name="Sheet1")

    def test_options_normalise_columns(self) -> None:
        options = VerificationOptions(email_column="b", phone_column="", sheet_name="  ")
        assert (options.email_column, options.phone_column, options.sheet_name) == ("B", None, None)


# ── Stream ────────────────────────────────────────────────────────────


class TestExistingStatusColumn:
    @pytest.mark.asyncio()
    async def test_verified_rows_are_skipped(self) -> None:
        tabular = InMemoryTabularProvider()
        tabular.seed_tab(
            "Sheet1",
            [
                ["Name", "Email", "Email Status"],
                ["Ann", "ann@example.com", "✅ Safe"],
                ["Bob", "bob@example.com"],
            ],
        )
        email = StubEmailVerifier()

        events = await _run(_controller(tabular, email=email), email_column="B")

        assert _names(events) == [
            "start",
            "info",
            "email_start",
            "email_progress",
            "email_progress",
            "email_complete",
            "complete",
        ]
        skipped, verified = events[3].data, events[4].data
        assert skipped["skipped"] is True and skipped["statusCode"] == "skipped"
        assert verified["email"] == "bob@example.com" and verified["current"] == 1
        assert email.verified == ["bob@example.com"]
        assert tabular.inserted_columns == []
        assert tabular.cell("Sheet1", "C3") == "✅ Safe"
        assert events[2].data == {"total": 1, "resultColumn": "C"}
        assert events[-2].data["processed"] == 1
        assert events[-2].data["skipped"] == 1


class TestColumnInsertion:
    @pytest.mark.asyncio()
    async def test_phone_column_shifts_after_email_insert(self) -> None:
        tabular = InMemoryTabularProvider()
        tabular.seed_tab(
            "Sheet1",
            [["Name", "Email", "Phone"], ["Ann", "ann@example.com", "555-0100"]],
        )
        phone = StubPhoneVerifier()
        sleeper = Sleeper()

        events = await _run(
            _controller(tabular, phone=phone, sleeper=sleeper), email_column="B", phone_column="C"
        )

        assert _names(events)[-1] == "complete"
        assert tabular.tabs["Sheet1"][0] == ["Name", "Email", "Email Status", "Phone", "Phone Status"]
        assert tabular.tabs["Sheet1"][1] == [
            "Ann",
            "ann@example.com",
            "✅ Safe",
            "555-0100",
            "✅ Valid (MOBILE)",
        ]
        assert phone.verified == ["555-0100"]
        assert [(index, count) for _, index, count in tabular.inserted_columns] == [(2, 1), (4, 1)]
        phone_complete = next(e for e in events if e.event == "phone_complete")
        assert phone_complete.data["column"] == "C"
        assert phone_complete.data["resultColumn"] == "E"
        assert phone_complete.data["usedNumVerify"] is False
        assert sleeper.calls == [0.3, 0.1]

    @pytest.mark.asyncio()
    async def test_empty_values_are_not_verified(self) -> None:
        tabular = InMemoryTabularProvider()
        tabular.seed_tab("Sheet1", [["Email"], [""], ["c@example.com"]])
        email = StubEmailVerifier()

        events = await _run(_controller(tabular, email=email), email_column="A")

        assert email.verified == ["c@example.com"]
        assert tabular.cell("Sheet1", "B3") == "✅ Safe"
        assert next(e for e in events if e.event == "email_start").data["total"] == 1

    @pytest.mark.asyncio()
    async def test_header_only_sheet_has_nothing_to_do(self) -> None:
        tabular = InMemoryTabularProvider()
        tabular.seed_tab("Sheet1", [["Email"]])

        events = await _run(_controller(tabular), email_column="A")

        assert _names(events) == ["start", "complete"]
        assert tabular.inserted_columns == []

    @pytest.mark.asyncio()
    async def test_numverify_is_used_when_requested(self) -> None:
        tabular = InMemoryTabularProvider()
        tabular.seed_tab("Sheet1", [["Phone"], ["+1 415 555 0100"]])
        local = StubPhoneVerifier(available=False)
        numverify = StubPhoneVerifier(label="✅ Mobile (Acme Telecom)")
        sleeper = Sleeper()

        events = await _run(
            _controller(tabular, phone=local, numverify=numverify, sleeper=sleeper),
            phone_column="A",
            use_numverify=True,
        )

        assert _names(events)[-1] == "complete"
        assert local.verified == []
        assert numverify.verified == ["+1 415 555 0100"]
        assert sleeper.calls == [2.0]
        assert events[-1].data["phoneResults"]["usedNumVerify"] is True


class TestQuotaRetry:
    @staticmethod
    def _leads() -> InMemoryTabularProvider:
        tabular = InMemoryTabularProvider()
        tabular.seed_tab(
            "Sheet1",
            [
                ["Email", "Email Status"],
                ["a@example.com"],
                ["b@example.com"],
                ["c@example.com"],
            ],
        )
        return tabular

    @pytest.mark.asyncio()
    async def test_quota_wait_then_retry(self) -> None:
        tabular = self._leads()
        tabular.write_errors = [QuotaExceededError(message="Quota exceeded")]
        sleeper = Sleeper()

        events = await _run(_controller(tabular, sleeper=sleeper), email_column="A")

        names = _names(events)
        assert names.count("quota_wait") == 1
        wait = events[names.index("quota_wait")]
        assert wait.data["attempt"] == 1
        assert wait.data["maxRetries"] == 5
        assert "Waiting 60 seconds" in wait.data["message"]
        assert sleeper.calls[0] == 60.0
        assert names[-1] == "complete"
        assert tabular.cell("Sheet1", "B2") == "✅ Safe"

    @pytest.mark.asyncio()
    async def test_quota_wait_is_delivered_before_the_wait(self) -> None:
        tabular = self._leads()
        tabular.write_errors = [QuotaExceededError(message="Quota exceeded")]
        received: list[str] = []
        seen_when_sleeping: dict[float, list[str]] = {}

        async def sleep(seconds: float) -> None:
            seen_when_sleeping.setdefault(seconds, list(received))

        controller = VerificationStreamController(
            tabular=tabular,
            email_verifier=StubEmailVerifier(),
            phone_verifier=StubPhoneVerifier(),
            numverify_verifier=StubPhoneVerifier(),
            sleep=sleep,
            email_delay=0.3,
            quota_wait_seconds=60.0,
        )
        async for event in controller.stream("sheet-1", VerificationOptions(email_column="A")):
            received.append(event.event)

        assert seen_when_sleeping[60.0][-1] == "quota_wait"
        assert received[-1] == "complete"

    @pytest.mark.asyncio()
    async def test_persistent_quota_errors_end_the_run(self) -> None:
        tabular = self._leads()
        tabular.write_errors = [QuotaExceededError(message="Quota exceeded") for _ in range(5)]
        email = StubEmailVerifier()
        sleeper = Sleeper()

        events = await _run(_controller(tabular, email=email, sleeper=sleeper), email_column="A")

        names = _names(events)
        assert names.count("quota_wait") == 4
        assert names[-1] == "error"
        assert events[-1].data == {"message": "Quota exceeded"}
        assert email.verified == ["a@example.com"]
        assert sleeper.calls == [60.0] * 4
        assert "complete" not in names

    @pytest.mark.asyncio()
    async def test_non_quota_errors_are_not_retried(self) -> None:
        tabular = self._leads()
        tabular.write_errors = [SheetsError(message="HTTP 403 Forbidden")]

        events = await _run(_controller(tabular), email_column="A")

        assert "quota_wait" not in _names(events)
        assert events[-1].event == "error"
        assert events[-1].data["message"] == "HTTP 403 Forbidden"


class TestPreconditions:
    @pytest.mark.asyncio()
    async def test_email_backend_down(self, tabular: InMemoryTabularProvider) -> None:
        events = await _run(
            _controller(tabular, email=StubEmailVerifier(available=False)), email_column="B"
        )

        assert _names(events) == ["error"]
        assert events[0].data["message"] == "Email verification backend not running."

    @pytest.mark.asyncio()
    async def test_phone_backend_down(self, tabular: InMemoryTabularProvider) -> None:
        events = await _run(
            _controller(tabular, phone=StubPhoneVerifier(available=False)), phone_column="B"
        )

        assert _names(events) == ["error"]
        assert events[0].data["message"] == "down"

    @pytest.mark.asyncio()
    async def test_missing_tab(self, tabular: InMemoryTabularProvider) -> None:
        events = await _run(_controller(tabular), email_column="B", sheet_name="Leads 2025")

        assert _names(events) == ["error"]
        assert events[0].data["message"] == 'Sheet "Leads 2025" not found'


class TestUnexpectedFailures:
    @pytest.mark.asyncio()
    async def test_verifier_crash_ends_with_generic_error(self) -> None:
        class BrokenEmailVerifier(StubEmailVerifier):
            async def verify(self, email: str) -> VerificationResult:
                raise AttributeError("'list' object has no attribute 'get'")

        tabular = TestQuotaRetry._leads()

        events = await _run(_controller(tabular, email=BrokenEmailVerifier()), email_column="A")

        assert events[-1].event == "error"
        assert events[-1].data == {"message": "Verification failed unexpectedly"}
        assert "complete" not in _names(events)


class TestRunLog:
    @pytest.mark.asyncio()
    async def test_run_is_logged(self, tabular: InMemoryTabularProvider, store: SQLiteDocumentStore) -> None:
        await _run(_controller(tabular, store=store), email_column="B")

        logged = await store.list_operations("sheet-1")
        assert len(logged) == 1
        assert logged[0].operation_type == "leads_verification"
        assert logged[0].performed_by == "user"
        assert logged[0].cells_affected == 1
