"""Embedding provider implementations (OpenAI text-embedding-3-small)."""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
