"""Utility modules for the client knowledge agent.

- **errors** -- Domain-specific exception hierarchy rooted at
  KnowledgeAgentError; each pipeline stage raises its own subclass so
  callers can handle failures granularly.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **columns** -- A1-notation column letter/index conversion used by the
  leads verification stream and the sheet preview endpoint.
"""

# -- A1 column helpers -------------------------------------------------------
from src.utils.columns import col_letter_to_index, index_to_col_letter, qualify_range

# -- Domain exception hierarchy ----------------------------------------------
from src.utils.errors import (
    AnalysisError,
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    KnowledgeAgentError,
    LLMError,
    NotFoundError,
    QuotaExceededError,
    RetrievalError,
    SheetsError,
    StoreError,
    ToolExecutionError,
    VerificationBackendUnavailableError,
)

# -- Structured logging setup ------------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "AnalysisError",
    "ConfigurationError",
    "EmbeddingError",
    "ExtractionError",
    "KnowledgeAgentError",
    "LLMError",
    "NotFoundError",
    "QuotaExceededError",
    "RetrievalError",
    "SheetsError",
    "StoreError",
    "ToolExecutionError",
    "VerificationBackendUnavailableError",
    "col_letter_to_index",
    "configure_logging",
    "get_logger",
    "index_to_col_letter",
    "qualify_range",
]
