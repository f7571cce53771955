"""Shared fixtures built on the factories in factories.py."""

from __future__ import annotations

import uuid

import pytest

from meeting_copilot.ingestion.embedding_cache import EmbeddingCache
from meeting_copilot.ingestion.embeddings import EmbeddingService, EmbeddingWorkerPool

from factories import InMemoryRepository, KeywordModel


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def keyword_model() -> KeywordModel:
    return KeywordModel()


@pytest.fixture
def embedding_service(keyword_model: KeywordModel):
    pool = EmbeddingWorkerPool("fake", workers=1, model_factory=lambda name: keyword_model)
    service = EmbeddingService(pool, EmbeddingCache(max_size=100), batch_size=10)
    yield service
    service.shutdown()


@pytest.fixture
def collection_name() -> str:
    return f"test_{uuid.uuid4().hex}"
