"""Tests for transcript indexing, retrieval and question answering."""

from __future__ import annotations

import hashlib
from unittest.mock import AsyncMock

import chromadb
import pytest

from meeting_copilot.ingestion.embeddings import EmbeddingService
from meeting_copilot.retrieval.generation import GenerationResult, PromptCache
from meeting_copilot.retrieval.models import QAStatus, SearchResult
from meeting_copilot.retrieval.rag import (
    EMPTY_ANSWER,
    GENERATION_ERROR_ANSWER,
    GENERIC_ERROR_ANSWER,
    NO_DATA_ANSWER,
    RETRIEVAL_ERROR_ANSWER,
    GenerationError,
    RAGEngine,
    RetrievalError,
    format_offset,
    point_id,
)
from meeting_copilot.retrieval.vector_store import ChromaVectorStore

from factories import FAKE_DIMENSIONS, InMemoryRepository, make_fragment


@pytest.fixture
def prompts() -> PromptCache:
    cache = PromptCache()
    cache.load()
    return cache


@pytest.fixture
def answer_model() -> AsyncMock:
    model = AsyncMock()
    model.generate.return_value = GenerationResult(text="  Bob owns the launch.  ")
    return model


@pytest.fixture
def store() -> ChromaVectorStore:
    return ChromaVectorStore(chromadb.EphemeralClient())


@pytest.fixture
def engine(
    store: ChromaVectorStore,
    embedding_service: EmbeddingService,
    answer_model: AsyncMock,
    prompts: PromptCache,
    repository: InMemoryRepository,
    collection_name: str,
) -> RAGEngine:
    return RAGEngine(
        store,
        embedding_service,
        answer_model,
        prompts,
        repository,
        collection_name=collection_name,
        dimensions=FAKE_DIMENSIONS,
    )


def result(content: str = "Alice: hi", timestamp: int = 0) -> SearchResult:
    return SearchResult(
        content=content, speaker_id="a", speaker_name="Alice", timestamp=timestamp, score=0.9
    )


class TestHelpers:
    def test_point_id_is_md5_of_trimmed_content_and_timestamp(self) -> None:
        expected = hashlib.md5(b"Alice: hi_1500").hexdigest()
        assert point_id(" Alice: hi ", 1500) == expected

    def test_format_offset(self) -> None:
        assert format_offset(0) == "00:00:00"
        assert format_offset(3_723_000) == "01:02:03"


class TestStoreTranscripts:
    @pytest.mark.asyncio
    async def test_empty_input(self, engine: RAGEngine) -> None:
        await engine.initialize()
        assert await engine.store_transcripts("m1", []) == 0

    @pytest.mark.asyncio
    async def test_stores_one_point_per_chunk(
        self, engine: RAGEngine, store: ChromaVectorStore, collection_name: str
    ) -> None:
        await engine.initialize()
        fragments = [
            make_fragment("the budget", speaker_id="a", speaker_name="Alice", timestamp_ms=0),
            make_fragment("is tight", speaker_id="a", speaker_name="Alice", timestamp_ms=5_000),
            make_fragment("launch soon", speaker_id="b", speaker_name="Bob", timestamp_ms=9_000),
        ]

        assert await engine.store_transcripts("m1", fragments) == 2

        hits = await store.search(collection_name, [0.0, 1.0, 0.0, 0.0, 0.1], limit=5)
        assert len(hits) == 2
        top = hits[0].payload
        assert top["content"] == "Bob: launch soon"
        assert top["speaker_name"] == "Bob"
        assert top["meeting_id"] == "m1"
        assert top["segment_count"] == 1
        assert hits[0].id == point_id("Bob: launch soon", 9_000)
        alice = hits[1].payload
        assert alice["text"] == "the budget is tight"
        assert alice["timestamp"] == 5_000
        assert alice["segment_count"] == 2

    @pytest.mark.asyncio
    async def test_is_idempotent(
        self, engine: RAGEngine, store: ChromaVectorStore, collection_name: str
    ) -> None:
        await engine.initialize()
        fragments = [make_fragment("budget review", timestamp_ms=0)]
        await engine.store_transcripts("m1", fragments)
        await engine.store_transcripts("m1", fragments)

        hits = await store.search(collection_name, [1.0, 0.0, 0.0, 0.0, 0.1], limit=10)
        assert len(hits) == 1

    @pytest.mark.asyncio
    async def test_redelivered_fragment_in_one_batch(
        self, engine: RAGEngine, store: ChromaVectorStore, collection_name: str
    ) -> None:
        await engine.initialize()
        fragments = [
            make_fragment("budget is fine", speaker_id="a", speaker_name="Alice", timestamp_ms=1_000),
            make_fragment("ok", speaker_id="b", speaker_name="Bob", timestamp_ms=1_500),
            make_fragment("budget is fine", speaker_id="a", speaker_name="Alice", timestamp_ms=1_000),
        ]

        assert await engine.store_transcripts("m1", fragments) == 2

        hits = await store.search(collection_name, [1.0, 0.0, 0.0, 0.0, 0.1], limit=10)
        assert sorted(hit.payload["content"] for hit in hits) == [
            "Alice: budget is fine",
            "Bob: ok",
        ]

    @pytest.mark.asyncio
    async def test_skips_wrong_dimension_vectors(
        self, engine: RAGEngine, embedding_service: EmbeddingService
    ) -> None:
        embedding_service.embed_batch = AsyncMock(return_value=[[0.1, 0.2], [0.1] * FAKE_DIMENSIONS])
        engine.store = AsyncMock()
        fragments = [
            make_fragment("a", speaker_id="a", timestamp_ms=0),
            make_fragment("b", speaker_id="b", timestamp_ms=1),
        ]

        assert await engine.store_transcripts("m1", fragments) == 1
        (points,) = engine.store.upsert.await_args.args[1:]
        assert len(points) == 1

    @pytest.mark.asyncio
    async def test_upsert_failure_propagates(self, engine: RAGEngine) -> None:
        engine.store = AsyncMock()
        engine.store.upsert.side_effect = ConnectionError("down")
        with pytest.raises(ConnectionError):
            await engine.store_transcripts("m1", [make_fragment("x")])


class TestInitialize:
    @pytest.mark.asyncio
    async def test_declares_indexes(self, engine: RAGEngine) -> None:
        engine.store = AsyncMock()
        await engine.initialize()
        engine.store.initialize_collection.assert_awaited_once_with(
            engine.collection_name, FAKE_DIMENSIONS
        )
        fields = [c.args[1] for c in engine.store.create_index.await_args_list]
        assert fields == ["meeting_id", "speaker_id", "timestamp"]

    @pytest.mark.asyncio
    async def test_failure_is_raised(self, engine: RAGEngine) -> None:
        engine.store = AsyncMock()
        engine.store.initialize_collection.side_effect = ConnectionError("no chroma")
        with pytest.raises(ConnectionError):
            await engine.initialize()


class TestSearch:
    @pytest.mark.asyncio
    async def test_filters_by_meeting(self, engine: RAGEngine) -> None:
        await engine.initialize()
        await engine.store_transcripts("m1", [make_fragment("budget", timestamp_ms=0)])
        await engine.store_transcripts("m2", [make_fragment("budget again", timestamp_ms=0)])

        results = await engine.search_similar_content("m2", "budget?")
        assert [r.content for r in results] == ["Alice: budget again"]
        assert results[0].speaker_id == "spk-alice"

    @pytest.mark.asyncio
    async def test_failure_becomes_retrieval_error(self, engine: RAGEngine) -> None:
        engine.store = AsyncMock()
        engine.store.search.side_effect = ConnectionError("down")
        with pytest.raises(RetrievalError):
            await engine.search_similar_content("m1", "anything")


class TestGenerateAnswer:
    @pytest.mark.asyncio
    async def test_context_and_sources(self, engine: RAGEngine, answer_model: AsyncMock) -> None:
        long_content = "Bob: " + "x" * 200
        results = [result("Alice: hi", 61_000), result(long_content, 0)]

        answer = await engine.generate_answer("Who?", results)

        prompt = answer_model.generate.await_args.args[0]
        assert "[1] Alice (00:01:01): Alice: hi\n\n[2] Alice (00:00:00): Bob: " in prompt
        assert "Question: Who?" in prompt
        assert "{{" not in prompt
        assert answer.answer == "Bob owns the launch."
        assert answer.sources[0] == "Alice: hi"
        assert answer.sources[1] == long_content[:100] + "..."

    @pytest.mark.asyncio
    async def test_exactly_100_chars_not_truncated(self, engine: RAGEngine) -> None:
        content = "y" * 100
        answer = await engine.generate_answer("q", [result(content)])
        assert answer.sources == [content]

    @pytest.mark.asyncio
    async def test_empty_model_text(self, engine: RAGEngine, answer_model: AsyncMock) -> None:
        answer_model.generate.return_value = GenerationResult(text="   ")
        answer = await engine.generate_answer("q", [result()])
        assert answer.answer == EMPTY_ANSWER

    @pytest.mark.asyncio
    async def test_model_failure(self, engine: RAGEngine, answer_model: AsyncMock) -> None:
        answer_model.generate.side_effect = RuntimeError("overloaded")
        with pytest.raises(GenerationError):
            await engine.generate_answer("q", [result()])


class TestAskQuestion:
    @pytest.mark.asyncio
    async def test_no_results_skips_model(
        self, engine: RAGEngine, answer_model: AsyncMock, repository: InMemoryRepository
    ) -> None:
        await engine.initialize()
        await engine.store_transcripts("other", [make_fragment("budget", timestamp_ms=0)])
        entry = await engine.ask_question("m1", "u1", "Anything?")

        answer_model.generate.assert_not_awaited()
        assert entry.status is QAStatus.ANSWERED
        assert entry.answer == NO_DATA_ANSWER
        assert entry.sources == []
        assert repository.qa_entries == [entry]

    @pytest.mark.asyncio
    async def test_answered(
        self, engine: RAGEngine, repository: InMemoryRepository
    ) -> None:
        await engine.initialize()
        await engine.store_transcripts("m1", [make_fragment("launch is friday", timestamp_ms=0)])

        entry = await engine.ask_question("m1", "u1", "When is the launch?")

        assert entry.status is QAStatus.ANSWERED
        assert entry.answer == "Bob owns the launch."
        assert entry.sources == ["Alice: launch is friday"]
        assert entry.id is not None
        assert entry.user_id == "u1"

    @pytest.mark.asyncio
    async def test_search_failure_records_error_and_raises(
        self, engine: RAGEngine, answer_model: AsyncMock, repository: InMemoryRepository
    ) -> None:
        engine.store = AsyncMock()
        engine.store.search.side_effect = ConnectionError("secret internal detail")

        with pytest.raises(RetrievalError):
            await engine.ask_question("m1", "u1", "q")

        answer_model.generate.assert_not_awaited()
        (entry,) = repository.qa_entries
        assert entry.status is QAStatus.ERROR
        assert entry.answer == RETRIEVAL_ERROR_ANSWER
        assert "secret" not in entry.answer

    @pytest.mark.asyncio
    async def test_generation_failure_records_error(
        self, engine: RAGEngine, answer_model: AsyncMock, repository: InMemoryRepository
    ) -> None:
        await engine.initialize()
        await engine.store_transcripts("m1", [make_fragment("budget", timestamp_ms=0)])
        answer_model.generate.side_effect = RuntimeError("overloaded")

        with pytest.raises(GenerationError):
            await engine.ask_question("m1", "u1", "budget?")
        assert repository.qa_entries[-1].answer == GENERATION_ERROR_ANSWER

    @pytest.mark.asyncio
    async def test_other_failure_records_generic_error(
        self, engine: RAGEngine, repository: InMemoryRepository
    ) -> None:
        await engine.initialize()
        await engine.store_transcripts("other", [make_fragment("budget", timestamp_ms=0)])
        original_save = repository.save_qa_entry
        calls = 0

        async def flaky_save(entry):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("db hiccup")
            return await original_save(entry)

        repository.save_qa_entry = flaky_save

        with pytest.raises(RuntimeError, match="db hiccup"):
            await engine.ask_question("m1", "u1", "q")
        (entry,) = repository.qa_entries
        assert entry.status is QAStatus.ERROR
        assert entry.answer == GENERIC_ERROR_ANSWER


class TestSummaryAndDeletion:
    @pytest.mark.asyncio
    async def test_generate_summary(self, engine: RAGEngine, answer_model: AsyncMock) -> None:
        answer_model.generate.return_value = GenerationResult(text=" - budget agreed ")
        fragments = [
            make_fragment("budget ok?", speaker_name="Alice"),
            make_fragment("yes", speaker_id="b", speaker_name="Bob"),
        ]

        summary = await engine.generate_summary("m1", fragments)

        assert summary == "- budget agreed"
        prompt = answer_model.generate.await_args.args[0]
        assert "Alice: budget ok?\nBob: yes" in prompt

    @pytest.mark.asyncio
    async def test_empty_summary_skips_model(
        self, engine: RAGEngine, answer_model: AsyncMock
    ) -> None:
        assert await engine.generate_summary("m1", []) == ""
        answer_model.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_summary_failure(self, engine: RAGEngine, answer_model: AsyncMock) -> None:
        answer_model.generate.side_effect = RuntimeError("boom")
        with pytest.raises(GenerationError):
            await engine.generate_summary("m1", [make_fragment()])

    @pytest.mark.asyncio
    async def test_delete_meeting_vectors(self, engine: RAGEngine) -> None:
        await engine.initialize()
        await engine.store_transcripts("m2", [make_fragment("hiring", timestamp_ms=0)])
        await engine.store_transcripts("m1", [make_fragment("budget", timestamp_ms=0)])
        await engine.delete_meeting_vectors("m1")
        assert await engine.search_similar_content("m1", "budget") == []
