"""Custom exception hierarchy for the client knowledge agent.

All application exceptions inherit from :class:`KnowledgeAgentError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "google_sheets", "reacher") caused the
failure.

The hierarchy is organized by pipeline domain:

    KnowledgeAgentError  (base -- catch-all for any application error)
    +-- ExtractionError                      (source unreadable / too little text)
    +-- AnalysisError                        (LLM structured-output contract broken)
    +-- EmbeddingError                       (embedding call failure)
    +-- RetrievalError                       (document store failure during search)
    +-- ToolExecutionError                   (one spreadsheet tool call failed)
    +-- SheetsError                          (tabular provider call failed)
    |   +-- QuotaExceededError               (HTTP 429 / quota exhausted)
    +-- VerificationBackendUnavailableError  (email/phone verifier unreachable)
    +-- LLMError                             (any LLM API call failure)
    +-- StoreError                           (persistence failure)
    +-- NotFoundError                        (client/document/sheet missing)
    +-- ConfigurationError                   (missing credentials / settings)

Ingestion catches everything at its task boundary and records the message
on the document; the tool loop feeds ``ToolExecutionError`` back to the
model; the verification stream retries on ``QuotaExceededError`` only.
"""


class KnowledgeAgentError(Exception):
    """Base exception for all application errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[google_sheets] Quota exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ExtractionError(KnowledgeAgentError):
    """Raised when text cannot be extracted from a source, or too little was found."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AnalysisError(KnowledgeAgentError):
    """Raised when the LLM document analysis misses a required field or is not JSON."""

    def __init__(
        self,
        message: str = "Document analysis failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(KnowledgeAgentError):
    """Raised when an embedding call fails or no embedding provider is configured."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Retrieval / chat errors
# ---------------------------------------------------------------------------

class RetrievalError(KnowledgeAgentError):
    """Raised when the document store fails while serving a search."""

    def __init__(
        self,
        message: str = "Document retrieval failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ToolExecutionError(KnowledgeAgentError):
    """Raised when a single spreadsheet tool call fails.

    Never fatal to the tool loop: the orchestrator serializes the message
    back to the model as ``{"error": ...}`` and keeps going.
    """

    def __init__(
        self,
        message: str = "Tool execution failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(KnowledgeAgentError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Spreadsheet / verification errors
# ---------------------------------------------------------------------------

class SheetsError(KnowledgeAgentError):
    """Raised when a spreadsheet provider call fails."""

    def __init__(
        self,
        message: str = "Spreadsheet operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QuotaExceededError(SheetsError):
    """Raised when the spreadsheet provider rejects a call for quota reasons (HTTP 429).

    The verification stream catches this to wait and retry the write.
    """

    def __init__(
        self,
        message: str = "Spreadsheet quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VerificationBackendUnavailableError(KnowledgeAgentError):
    """Raised when the email or phone verification backend cannot be reached."""

    def __init__(
        self,
        message: str = "Verification backend is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Persistence / configuration errors
# ---------------------------------------------------------------------------

class StoreError(KnowledgeAgentError):
    """Raised when the document store fails to read or write."""

    def __init__(
        self,
        message: str = "Document store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(KnowledgeAgentError):
    """Raised when a referenced client, document or sheet does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeAgentError):
    """Raised when configuration is invalid or credentials are missing."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
