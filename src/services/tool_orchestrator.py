"""Bounded LLM tool-calling loop over the spreadsheet tools.

The loop alternates between the model and the tools:

    1. ``llm.chat(system, messages, tools)``
    2. No tool calls in the reply -> the reply text is the answer.
    3. Otherwise execute every requested call in order.  Each result goes
       back as ``{"result": ...}`` or ``{"error": "<message>"}``; one failing
       call never stops the others.
    4. Append the assistant tool-call turn and all tool results, then repeat.

After ``max_iterations`` model calls the last assistant text is returned as
is.  Mutating calls become :class:`ToolOperation` entries and are written to
the operations log with ``performed_by="ai"``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog

from src.models.sheet import ConnectedSheet, OperationLogEntry
from src.models.tools import OrchestratorResult, ToolCall, ToolOperation
from src.services.sheet_tools import SHEET_TOOLS, SheetToolExecutor
from src.utils.errors import KnowledgeAgentError, StoreError

if TYPE_CHECKING:
    from src.interfaces.document_store import IDocumentStore
    from src.interfaces.llm_provider import ILLMProvider

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_ITERATIONS = 5


class ToolCallOrchestrator:
    """Drives the model/tool conversation until a final answer is produced.

    Parameters
    ----------
    llm:
        Tool-capable chat provider.
    executor:
        Runs individual spreadsheet tool calls.
    store:
        Receives one operations-log row per mutating call.
    max_iterations:
        Upper bound on model calls per request.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        executor: SheetToolExecutor,
        store: IDocumentStore,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self._llm = llm
        self._executor = executor
        self._store = store
        self._max_iterations = max(max_iterations, 1)

    async def run(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        sheets: Sequence[ConnectedSheet],
        tools: list[dict[str, Any]] | None = None,
    ) -> OrchestratorResult:
        """Run the loop and return the final answer with all operations.

        Raises
        ------
        src.utils.errors.LLMError
            If a model call fails.
        """
        conversation = list(messages)
        declared = tools if tools is not None else SHEET_TOOLS
        operations: list[ToolOperation] = []
        all_calls: list[ToolCall] = []
        last_text = ""

        for iteration in range(1, self._max_iterations + 1):
            completion = await self._llm.chat(
                system_prompt=system_prompt,
                messages=conversation,
                tools=declared,
            )
            if completion.text:
                last_text = completion.text

            if not completion.tool_calls:
                logger.info("tool_loop_finished", iterations=iteration, tool_calls=len(all_calls))
                return OrchestratorResult(
                    response=completion.text,
                    operations=operations,
                    tool_calls=all_calls,
                    iterations=iteration,
                )

            conversation.append(
                {
                    "role": "assistant",
                    "content": completion.text,
                    "tool_calls": list(completion.tool_calls),
                }
            )
            for call in completion.tool_calls:
                all_calls.append(call)
                payload = await self._execute(call, sheets, operations)
                conversation.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(payload, default=str),
                    }
                )

        logger.warning("tool_loop_iteration_cap", iterations=self._max_iterations)
        return OrchestratorResult(
            response=last_text,
            operations=operations,
            tool_calls=all_calls,
            iterations=self._max_iterations,
        )

    async def _execute(
        self,
        call: ToolCall,
        sheets: Sequence[ConnectedSheet],
        operations: list[ToolOperation],
    ) -> dict[str, Any]:
        try:
            result, operation = await self._executor.execute(call, sheets)
        except KnowledgeAgentError as exc:
            logger.warning("tool_call_failed", tool=call.name, error=exc.message)
            return {"error": exc.message}
        except Exception as exc:
            logger.exception("tool_call_crashed", tool=call.name)
            return {"error": f"{call.name} failed: {type(exc).__name__}"}

        logger.info("tool_call_succeeded", tool=call.name)
        if operation is not None:
            operations.append(operation)
            await self._record(operation)
        return {"result": result}

    async def _record(self, operation: ToolOperation) -> None:
        try:
            await self._store.log_operation(
                OperationLogEntry(
                    spreadsheet_id=operation.spreadsheet_id,
                    operation_type=operation.operation_type,
                    range=operation.range,
                    cells_affected=operation.cells_affected,
                    performed_by="ai",
                )
            )
        except StoreError as exc:
            logger.warning("operation_log_failed", tool=operation.tool, error=exc.message)
