"""Spreadsheet tools offered to the LLM, and their executor.

Each tool is declared as a JSON-schema function spec (``name``,
``description``, ``parameters``); the LLM providers translate the list into
their own tool format.  :class:`SheetToolExecutor` runs one
:class:`~src.models.tools.ToolCall` against the tabular provider, restricted
to the spreadsheets connected to the current client.

``spreadsheet_id`` may be omitted when exactly one sheet is connected.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog

from src.models.sheet import ConnectedSheet
from src.models.tools import ToolCall, ToolOperation
from src.utils.columns import qualify_range
from src.utils.errors import KnowledgeAgentError, ToolExecutionError

if TYPE_CHECKING:
    from src.interfaces.tabular_provider import ITabularProvider

logger = structlog.get_logger(logger_name=__name__)

_SPREADSHEET_ID = {
    "type": "string",
    "description": "ID of a connected spreadsheet. Optional when only one sheet is connected.",
}
_VALUES = {
    "type": "array",
    "description": "2D array of values; each inner array is a row.",
    "items": {"type": "array", "items": {}},
}

SHEET_TOOLS: list[dict[str, Any]] = [
    {
        "name": "list_tabs",
        "description": "List the tabs (worksheets) of a connected spreadsheet.",
        "parameters": {
            "type": "object",
            "properties": {"spreadsheet_id": _SPREADSHEET_ID},
        },
    },
    {
        "name": "read_sheet",
        "description": (
            "Read data from a Google Sheet. Use this to see current contents before "
            "making changes."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "spreadsheet_id": _SPREADSHEET_ID,
                "range": {
                    "type": "string",
                    "description": "A1 notation range, e.g. 'Sheet1!A1:D10'.",
                },
                "sheet_name": {
                    "type": "string",
                    "description": "Tab to read entirely when no range is given.",
                },
            },
        },
    },
    {
        "name": "write_cells",
        "description": "Write values to a range of cells, overwriting existing content.",
        "parameters": {
            "type": "object",
            "properties": {
                "spreadsheet_id": _SPREADSHEET_ID,
                "range": {
                    "type": "string",
                    "description": "A1 notation range to write, e.g. 'Sheet1!A1:B2'.",
                },
                "values": _VALUES,
            },
            "required": ["range", "values"],
        },
    },
    {
        "name": "append_rows",
        "description": "Append rows after the last row of data in a tab.",
        "parameters": {
            "type": "object",
            "properties": {
                "spreadsheet_id": _SPREADSHEET_ID,
                "sheet_name": {"type": "string", "description": "Tab to append to."},
                "values": _VALUES,
            },
            "required": ["values"],
        },
    },
    {
        "name": "update_cell",
        "description": "Update a single cell.",
        "parameters": {
            "type": "object",
            "properties": {
                "spreadsheet_id": _SPREADSHEET_ID,
                "sheet_name": {"type": "string", "description": "Tab containing the cell."},
                "cell": {"type": "string", "description": "Cell reference, e.g. 'B3'."},
                "value": {"description": "New value; formulas start with '='."},
            },
            "required": ["cell", "value"],
        },
    },
    {
        "name": "clear_range",
        "description": "Clear the values in a range (formatting is kept).",
        "parameters": {
            "type": "object",
            "properties": {
                "spreadsheet_id": _SPREADSHEET_ID,
                "range": {"type": "string", "description": "A1 notation range to clear."},
            },
            "required": ["range"],
        },
    },
]

TOOL_NAMES = frozenset(tool["name"] for tool in SHEET_TOOLS)


def _require(arguments: dict[str, Any], name: str) -> Any:
    value = arguments.get(name)
    if value is None or value == "":
        raise ToolExecutionError(message=f"Missing required argument: {name}")
    return value


def _optional_str(arguments: dict[str, Any], name: str) -> str | None:
    """Read a text argument; numbers are accepted as their string form."""
    value = arguments.get(name)
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ToolExecutionError(message=f"{name} must be a string")
    return str(value)


def _require_str(arguments: dict[str, Any], name: str) -> str:
    value = _optional_str(arguments, name)
    if value is None:
        raise ToolExecutionError(message=f"Missing required argument: {name}")
    return value


def _require_rows(arguments: dict[str, Any]) -> list[list[Any]]:
    values = _require(arguments, "values")
    if not isinstance(values, list) or not all(isinstance(row, list) for row in values):
        raise ToolExecutionError(message="values must be a 2D array of rows")
    return values


class SheetToolExecutor:
    """Executes spreadsheet tool calls for one client's connected sheets."""

    def __init__(self, tabular: ITabularProvider) -> None:
        self._tabular = tabular

    def resolve_sheet(
        self, arguments: dict[str, Any], sheets: Sequence[ConnectedSheet]
    ) -> ConnectedSheet:
        """Pick the target sheet; unconnected ids are rejected."""
        requested = arguments.get("spreadsheet_id")
        if not requested:
            if len(sheets) == 1:
                return sheets[0]
            if not sheets:
                raise ToolExecutionError(message="No spreadsheets are connected for this client")
            raise ToolExecutionError(
                message="spreadsheet_id is required when more than one sheet is connected"
            )
        for sheet in sheets:
            if sheet.spreadsheet_id == requested:
                return sheet
        raise ToolExecutionError(message=f"Spreadsheet {requested} is not connected to this client")

    @staticmethod
    def _default_tab(sheet: ConnectedSheet) -> str:
        return sheet.tab_titles[0] if sheet.tab_titles else "Sheet1"

    async def execute(
        self, call: ToolCall, sheets: Sequence[ConnectedSheet]
    ) -> tuple[Any, ToolOperation | None]:
        """Run *call* and return ``(result, operation)``.

        ``operation`` is set for mutating tools only.

        Raises
        ------
        ToolExecutionError
            For unknown tools, bad arguments, unconnected spreadsheets or a
            failing provider call.
        """
        if call.name not in TOOL_NAMES:
            raise ToolExecutionError(message=f"Unknown function: {call.name}")

        args = call.arguments
        sheet = self.resolve_sheet(args, sheets)
        sid = sheet.spreadsheet_id
        try:
            if call.name == "list_tabs":
                info = await self._tabular.get_info(sid)
                return {"title": info.title, "tabs": [tab.title for tab in info.tabs]}, None

            if call.name == "read_sheet":
                range_ = _optional_str(args, "range") or qualify_range(
                    _optional_str(args, "sheet_name") or self._default_tab(sheet), "A:ZZ"
                )
                values = await self._tabular.read_range(sid, range_)
                return {"range": range_, "values": values}, None

            if call.name == "write_cells":
                range_ = _require_str(args, "range")
                updated = await self._tabular.write_range(sid, range_, _require_rows(args))
                return {"updatedCells": updated}, ToolOperation(
                    tool=call.name,
                    operation_type="write",
                    spreadsheet_id=sid,
                    range=range_,
                    cells_affected=updated,
                )

            if call.name == "append_rows":
                rows = _require_rows(args)
                tab = _optional_str(args, "sheet_name") or self._default_tab(sheet)
                range_ = qualify_range(tab, "A:Z")
                appended = await self._tabular.append_rows(sid, range_, rows)
                return {"updatedRows": appended}, ToolOperation(
                    tool=call.name,
                    operation_type="append",
                    spreadsheet_id=sid,
                    range=range_,
                    cells_affected=sum(len(row) for row in rows),
                    rows=appended,
                )

            if call.name == "update_cell":
                cell = qualify_range(
                    _optional_str(args, "sheet_name") or self._default_tab(sheet),
                    _require_str(args, "cell"),
                )
                if "value" not in args:
                    raise ToolExecutionError(message="Missing required argument: value")
                await self._tabular.update_cell(sid, cell, args["value"])
                return {"updated": cell}, ToolOperation(
                    tool=call.name,
                    operation_type="update",
                    spreadsheet_id=sid,
                    range=cell,
                    cells_affected=1,
                )

            # clear_range
            range_ = _require_str(args, "range")
            await self._tabular.clear_range(sid, range_)
            return {"cleared": range_}, ToolOperation(
                tool=call.name,
                operation_type="clear",
                spreadsheet_id=sid,
                range=range_,
            )
        except ToolExecutionError:
            raise
        except KnowledgeAgentError as exc:
            raise ToolExecutionError(message=exc.message, provider_name=exc.provider_name) from exc
