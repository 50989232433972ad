"""Models for LLM tool calling and the spreadsheet operations it performs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolCall(BaseModel):
    """One function call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ChatCompletion(BaseModel):
    """Provider-neutral chat response: text and/or tool calls."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ToolOperation(BaseModel):
    """A spreadsheet mutation performed by a tool call, reported to the caller."""

    model_config = ConfigDict(frozen=True)

    tool: str
    operation_type: str
    spreadsheet_id: str
    range: str = ""
    cells_affected: int = 0
    rows: int = 0
    success: bool = True
    error: str | None = None


class OrchestratorResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: str
    operations: list[ToolOperation] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    iterations: int = 0
