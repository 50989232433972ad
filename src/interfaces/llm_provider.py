"""Abstract base class for LLM service providers.

Defines the contract for the chat model used for document analysis, RAG
answers, image description and spreadsheet tool calling.  Implementations
wrap the Anthropic API (Claude) or OpenAI; call sites stay provider-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.tools import ChatCompletion


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by ingestion and chat.

    Messages passed to :meth:`chat` use a provider-neutral shape::

        {"role": "user", "content": "text"}
        {"role": "user", "content": [{"type": "text", "text": ...},
                                     {"type": "image", "media_type": ..., "data": <base64>}]}
        {"role": "assistant", "content": "text", "tool_calls": [ToolCall, ...]}
        {"role": "tool", "tool_call_id": ..., "content": "<json>"}

    Providers translate this into their own wire format.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a single text completion.

        Raises
        ------
        src.utils.errors.LLMError
            If the API call fails or returns an invalid response.
        """

    @abstractmethod
    async def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> ChatCompletion:
        """Run one chat turn, optionally offering tools.

        Parameters
        ----------
        system_prompt:
            Instructions and retrieved context.
        messages:
            Conversation so far in the neutral shape described on the class.
        tools:
            JSON-schema function declarations (``name``, ``description``,
            ``parameters``).  ``None`` disables tool calling.

        Returns
        -------
        ChatCompletion
            Reply text and any tool calls the model requested.

        Raises
        ------
        src.utils.errors.LLMError
            If the API call fails.
        """

    @abstractmethod
    async def describe_images(self, images: list[tuple[bytes, str]], question: str) -> str:
        """Describe ``(image_bytes, media_type)`` pairs in light of *question*.

        Raises
        ------
        NotImplementedError
            If the provider does not support vision.
        """

    @abstractmethod
    def supports_vision(self) -> bool:
        """Return ``True`` if this provider can process image inputs."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"anthropic"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present (no network call)."""
