"""Streaming email/phone verification of a spreadsheet's lead columns.

:meth:`VerificationStreamController.stream` is an async generator of
:class:`~src.models.verification.VerificationEvent`; the API layer renders
each one as a server-sent event.  For each requested column:

    1. Read ``'{tab}'!{col}:{next}`` (the values plus the column to its right)
    2. If the right-hand header already says "Email Status"/"Phone Status",
       reuse it and skip rows that already carry a status; otherwise insert a
       fresh column there and write the header
    3. Verify each non-empty value in order, emitting a progress event and
       writing the status cell immediately
    4. Sleep between rows to stay under the backend and Sheets rate limits

Inserting the email status column shifts every column at or after it one
to the right, so the phone column index is adjusted by the number of
insertions recorded at indices less than or equal to it.

Writes retry on Sheets quota errors: a ``quota_wait`` event is yielded to the
consumer first, then the controller sleeps for ``quota_wait_seconds`` before
the next attempt.
Closing the generator (client disconnect) stops further rows from being
scheduled; cells already written stay written.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from src.models.sheet import OperationLogEntry, SpreadsheetInfo
from src.models.verification import VerificationEvent, VerificationOptions, VerificationResult
from src.utils.columns import col_letter_to_index, index_to_col_letter, qualify_range
from src.utils.errors import KnowledgeAgentError, QuotaExceededError, SheetsError, StoreError

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.tabular_provider import ITabularProvider
    from src.interfaces.verification_provider import IEmailVerifier, IPhoneVerifier

logger = structlog.get_logger(logger_name=__name__)

SleepFn = Callable[[float], Awaitable[Any]]

EMAIL_DELAY_SECONDS = 0.3
PHONE_DELAY_SECONDS = 0.1
NUMVERIFY_DELAY_SECONDS = 2.0
QUOTA_WAIT_SECONDS = 60.0
MAX_WRITE_ATTEMPTS = 5


def is_quota_error(exc: BaseException) -> bool:
    """True for Sheets quota/rate-limit failures."""
    if isinstance(exc, QuotaExceededError):
        return True
    if isinstance(exc, SheetsError):
        text = exc.message.lower()
        return "quota" in text or "429" in text
    return False


def shifted_index(index: int, insertions: list[int]) -> int:
    """Column index after inserting one column at each recorded position."""
    return index + sum(1 for inserted in insertions if inserted <= index)


def build_preview(info: SpreadsheetInfo, sheet_name: str, values: list[list[Any]]) -> dict[str, Any]:
    """Column picker payload: headers, up to five preview rows per column."""
    headers = values[0] if values else []
    preview_rows = values[1:6]
    columns = []
    for idx, header in enumerate(headers):
        letter = index_to_col_letter(idx)
        columns.append(
            {
                "letter": letter,
                "index": idx,
                "header": header or f"Column {letter}",
                "preview": [row[idx] if idx < len(row) else "" for row in preview_rows],
            }
        )
    return {
        "spreadsheetInfo": info.model_dump(),
        "sheetName": sheet_name,
        "columns": columns,
        "totalRows": max(len(values) - 1, 0),
    }


def _cell(row: list[Any], idx: int) -> str:
    if idx < len(row) and row[idx] is not None:
        return str(row[idx])
    return ""


class VerificationStreamController:
    """Runs one verification pass over a spreadsheet tab.

    Parameters
    ----------
    tabular:
        Spreadsheet provider used to read, insert columns and write results.
    email_verifier, phone_verifier, numverify_verifier:
        Verification backends; ``numverify_verifier`` is used when the run
        asks for carrier lookup.
    store:
        Receives the ``leads_verification`` operations-log row.
    sleep:
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        tabular: ITabularProvider,
        email_verifier: IEmailVerifier,
        phone_verifier: IPhoneVerifier,
        numverify_verifier: IPhoneVerifier,
        store: IDocumentStore | None = None,
        sleep: SleepFn = asyncio.sleep,
        email_delay: float = EMAIL_DELAY_SECONDS,
        phone_delay: float = PHONE_DELAY_SECONDS,
        numverify_delay: float = NUMVERIFY_DELAY_SECONDS,
        quota_wait_seconds: float = QUOTA_WAIT_SECONDS,
        max_write_attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> None:
        self._tabular = tabular
        self._email = email_verifier
        self._phone = phone_verifier
        self._numverify = numverify_verifier
        self._store = store
        self._sleep = sleep
        self._email_delay = email_delay
        self._phone_delay = phone_delay
        self._numverify_delay = numverify_delay
        self._quota_wait = quota_wait_seconds
        self._max_attempts = max(max_write_attempts, 1)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write_with_retry(
        self,
        spreadsheet_id: str,
        range_: str,
        values: list[list[Any]],
    ) -> AsyncIterator[VerificationEvent]:
        """Write *values*, waiting out quota errors up to the attempt limit.

        Yields one ``quota_wait`` event before each wait, so the consumer
        hears about the pause while it happens.  Returns once the write lands.

        Raises
        ------
        SheetsError
            Non-quota failures immediately; quota failures once attempts run out.
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._tabular.write_range(spreadsheet_id, range_, values)
                return
            except SheetsError as exc:
                if not is_quota_error(exc) or attempt >= self._max_attempts:
                    raise
                logger.warning("sheets_quota_wait", range=range_, attempt=attempt)
                yield VerificationEvent(
                    event="quota_wait",
                    data={
                        "message": (
                            "Sheets API quota exceeded. Waiting "
                            f"{int(self._quota_wait)} seconds before retrying..."
                        ),
                        "attempt": attempt,
                        "maxRetries": self._max_attempts,
                    },
                )
                await self._sleep(self._quota_wait)

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    async def stream(
        self, spreadsheet_id: str, options: VerificationOptions
    ) -> AsyncIterator[VerificationEvent]:
        """Yield the events of one verification run; always ends in complete or error."""
        try:
            failure = await self._precheck(options)
            if failure:
                yield VerificationEvent(event="error", data={"message": failure})
                return

            info = await self._tabular.get_info(spreadsheet_id)
            target = options.sheet_name or (info.tabs[0].title if info.tabs else "Sheet1")
            tab = info.find_tab(target)
            if tab is None:
                yield VerificationEvent(event="error", data={"message": f'Sheet "{target}" not found'})
                return

            yield VerificationEvent(event="start", data={"sheet": target})
            logger.info(
                "verification_started",
                spreadsheet_id=spreadsheet_id,
                sheet=target,
                email_column=options.email_column,
                phone_column=options.phone_column,
            )

            results: dict[str, Any] = {"emailResults": None, "phoneResults": None}
            insertions: list[int] = []

            if options.email_column:
                async for event in self._verify_column(
                    spreadsheet_id=spreadsheet_id,
                    sheet=target,
                    tab_id=tab.sheet_id,
                    column=options.email_column,
                    column_index=col_letter_to_index(options.email_column),
                    kind="email",
                    verify=self._email.verify,
                    delay=self._email_delay,
                    insertions=insertions,
                ):
                    if event.event == "email_complete":
                        results["emailResults"] = event.data
                    yield event

            if options.phone_column:
                verifier = self._numverify if options.use_numverify else self._phone
                delay = self._numverify_delay if options.use_numverify else self._phone_delay
                async for event in self._verify_column(
                    spreadsheet_id=spreadsheet_id,
                    sheet=target,
                    tab_id=tab.sheet_id,
                    column=options.phone_column,
                    column_index=shifted_index(
                        col_letter_to_index(options.phone_column), insertions
                    ),
                    kind="phone",
                    verify=verifier.verify,
                    delay=delay,
                    insertions=insertions,
                    extra={"usedNumVerify": options.use_numverify},
                ):
                    if event.event == "phone_complete":
                        results["phoneResults"] = event.data
                    yield event

            await self._log_run(spreadsheet_id, target, results)
            logger.info("verification_completed", spreadsheet_id=spreadsheet_id, sheet=target)
            yield VerificationEvent(event="complete", data=results)
        except KnowledgeAgentError as exc:
            logger.error("verification_failed", spreadsheet_id=spreadsheet_id, error=str(exc))
            yield VerificationEvent(event="error", data={"message": exc.message})
        except Exception:
            logger.exception("verification_crashed", spreadsheet_id=spreadsheet_id)
            yield VerificationEvent(
                event="error", data={"message": "Verification failed unexpectedly"}
            )

    async def _precheck(self, options: VerificationOptions) -> str | None:
        if options.email_column:
            status = await self._email.check_available()
            if not status.available:
                return status.error or "Email verification backend not available"
        if options.phone_column and not options.use_numverify:
            status = await self._phone.check_available()
            if not status.available:
                return status.error or "Phone verification backend not available"
        return None

    async def _verify_column(
        self,
        *,
        spreadsheet_id: str,
        sheet: str,
        tab_id: int,
        column: str,
        column_index: int,
        kind: str,
        verify: Callable[[str], Awaitable[VerificationResult]],
        delay: float,
        insertions: list[int],
        extra: dict[str, Any] | None = None,
    ) -> AsyncIterator[VerificationEvent]:
        value_col = index_to_col_letter(column_index)
        result_index = column_index + 1
        result_col = index_to_col_letter(result_index)
        label = f"{kind.capitalize()} Status"

        values = await self._tabular.read_range(
            spreadsheet_id, qualify_range(sheet, f"{value_col}:{result_col}")
        )
        if len(values) <= 1:
            return

        reuse = label.lower() in _cell(values[0], 1).lower()
        if reuse:
            yield VerificationEvent(
                event="info",
                data={
                    "message": (
                        f"Found existing {label} column at {result_col}, "
                        "skipping already verified rows..."
                    )
                },
            )
        else:
            yield VerificationEvent(
                event="info",
                data={"message": f"Inserting new column {result_col} for {kind} results..."},
            )
            await self._tabular.insert_columns(spreadsheet_id, tab_id, result_index, 1)
            insertions.append(result_index)
            async for event in self.write_with_retry(
                spreadsheet_id, qualify_range(sheet, f"{result_col}1"), [[label]]
            ):
                yield event

        rows = values[1:]
        existing = [_cell(row, 1) if reuse else "" for row in rows]
        total = sum(1 for row, status in zip(rows, existing) if _cell(row, 0) and not status)

        yield VerificationEvent(
            event=f"{kind}_start", data={"total": total, "resultColumn": result_col}
        )

        verified = 0
        for offset, (row, status) in enumerate(zip(rows, existing)):
            value = _cell(row, 0)
            if status:
                yield VerificationEvent(
                    event=f"{kind}_progress",
                    data={
                        "current": verified,
                        "total": total,
                        kind: value,
                        "status": status,
                        "statusCode": "skipped",
                        "skipped": True,
                    },
                )
                continue
            if not value:
                continue

            result = await verify(value)
            verified += 1
            yield VerificationEvent(
                event=f"{kind}_progress",
                data={
                    "current": verified,
                    "total": total,
                    kind: value,
                    "status": result.status,
                    "statusCode": result.status_code,
                },
            )
            # Header is row 1, so data row ``offset`` lives on sheet row offset + 2.
            async for event in self.write_with_retry(
                spreadsheet_id,
                qualify_range(sheet, f"{result_col}{offset + 2}"),
                [[result.status]],
            ):
                yield event
            await self._sleep(delay)

        summary: dict[str, Any] = {
            "column": column,
            "resultColumn": result_col,
            "processed": verified,
            "skipped": (len(rows) - total) if reuse else 0,
        }
        if extra:
            summary.update(extra)
        yield VerificationEvent(event=f"{kind}_complete", data=summary)

    async def _log_run(self, spreadsheet_id: str, sheet: str, results: dict[str, Any]) -> None:
        if self._store is None:
            return
        processed = sum(
            (results.get(key) or {}).get("processed", 0) for key in ("emailResults", "phoneResults")
        )
        try:
            await self._store.log_operation(
                OperationLogEntry(
                    spreadsheet_id=spreadsheet_id,
                    operation_type="leads_verification",
                    range=sheet,
                    cells_affected=processed,
                    performed_by="user",
                )
            )
        except StoreError as exc:
            logger.warning("operation_log_failed", spreadsheet_id=spreadsheet_id, error=exc.message)
