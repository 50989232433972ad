"""Shared pytest fixtures for the client knowledge agent test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from src.models.conversation import Client
from src.providers.store.sqlite_document_store import SQLiteDocumentStore
from tests.fakes import FakeEmbeddingProvider, FakeLLM, InMemoryTabularProvider


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture()
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def tabular() -> InMemoryTabularProvider:
    provider = InMemoryTabularProvider()
    provider.seed_tab("Sheet1", [["Name", "Email"], ["Ann", "ann@example.com"]])
    return provider


@pytest_asyncio.fixture()
async def store(tmp_path: Path) -> SQLiteDocumentStore:
    """A fresh SQLite store with one client, ``client-1``."""
    document_store = SQLiteDocumentStore(db_path=tmp_path / "knowledge.db")
    await document_store.initialize()
    await document_store.create_client(
        Client(id="client-1", name="Acme Corp", description="Acme sells industrial widgets.")
    )
    return document_store
