"""OpenAI embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Inputs are truncated to 30,000 characters (the 8,191-token model limit
with room to spare); empty inputs map to a zero vector without an API call.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048
_MAX_INPUT_CHARS = 30000

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 1536)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch, preserving positions of blank inputs as zero vectors."""
        if not texts:
            return []
        if not self.is_available():
            raise EmbeddingError(
                message="OpenAI API key is not configured",
                provider_name=self.get_provider_name(),
            )

        prepared = [text[:_MAX_INPUT_CHARS] for text in texts]
        results: list[list[float]] = [[0.0] * self._dimension for _ in prepared]
        pending = [(i, text) for i, text in enumerate(prepared) if text.strip()]

        try:
            for start in range(0, len(pending), _OPENAI_BATCH_LIMIT):
                batch = pending[start : start + _OPENAI_BATCH_LIMIT]
                response = await self._client.embeddings.create(
                    input=[text for _, text in batch],
                    model=self._model,
                )
                for (position, _), item in zip(batch, response.data):
                    results[position] = list(item.embedding)
                logger.debug(
                    "openai_embedding_batch",
                    model=self._model,
                    batch_size=len(batch),
                    tokens=response.usage.total_tokens if response.usage else None,
                )
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"OpenAI embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return results

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "openai_embedding"

    def is_available(self) -> bool:
        return bool(self._api_key)
