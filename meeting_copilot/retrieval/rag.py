"""Retrieval-augmented question answering over live meeting transcripts."""

from __future__ import annotations

import hashlib
import logging

from meeting_copilot.ingestion.chunking import DEFAULT_WINDOW_MS, chunk_fragments
from meeting_copilot.ingestion.embeddings import EmbeddingService
from meeting_copilot.ingestion.models import RawFragment, VectorPoint
from meeting_copilot.ingestion.storage import MeetingRepository
from meeting_copilot.pipeline_config import PipelineConfig
from meeting_copilot.retrieval.generation import AnswerModel, PromptCache
from meeting_copilot.retrieval.models import QAEntry, QAStatus, RAGAnswer, SearchResult
from meeting_copilot.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)

NO_DATA_ANSWER = "I couldn't find any relevant transcript data to answer your question."
EMPTY_ANSWER = "Unable to generate answer."
RETRIEVAL_ERROR_ANSWER = "Unable to search transcript data. Please try again in a moment."
GENERATION_ERROR_ANSWER = "Unable to generate answer. Please try again."
GENERIC_ERROR_ANSWER = "An error occurred while processing your question."

SOURCE_PREVIEW_CHARS = 100

INDEXED_FIELDS = (
    ("meeting_id", "keyword"),
    ("speaker_id", "keyword"),
    ("timestamp", "integer"),
)


class RetrievalError(Exception):
    """Embedding the question or searching the vector store failed."""


class GenerationError(Exception):
    """The answer model call failed."""


def point_id(content: str, timestamp: int) -> str:
    """Deterministic id, so re-indexing the same chunk overwrites it."""
    return hashlib.md5(f"{content.strip()}_{timestamp}".encode()).hexdigest()


def format_offset(timestamp_ms: int) -> str:
    """Meeting offset in ms as ``HH:MM:SS``."""
    total = max(timestamp_ms, 0) // 1000
    return f"{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}"


def _preview(content: str) -> str:
    if len(content) > SOURCE_PREVIEW_CHARS:
        return content[:SOURCE_PREVIEW_CHARS] + "..."
    return content


class RAGEngine:
    """Indexes transcript chunks and answers questions about a meeting."""

    def __init__(
        self,
        store: VectorStore,
        embeddings: EmbeddingService,
        model: AnswerModel,
        prompts: PromptCache,
        repository: MeetingRepository,
        collection_name: str = "meeting_transcripts",
        dimensions: int = 384,
        chunk_window_ms: int = DEFAULT_WINDOW_MS,
        search_limit: int = 10,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.model = model
        self.prompts = prompts
        self.repository = repository
        self.collection_name = collection_name
        self.dimensions = dimensions
        self.chunk_window_ms = chunk_window_ms
        self.search_limit = search_limit

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        store: VectorStore,
        embeddings: EmbeddingService,
        model: AnswerModel,
        prompts: PromptCache,
        repository: MeetingRepository,
    ) -> RAGEngine:
        return cls(
            store,
            embeddings,
            model,
            prompts,
            repository,
            collection_name=config.collection_name,
            dimensions=config.embedding.dimensions,
            chunk_window_ms=config.chunk_window_ms,
            search_limit=config.search_limit,
        )

    async def initialize(self) -> None:
        """Create the collection and its payload indexes if they are missing."""
        try:
            await self.store.initialize_collection(self.collection_name, self.dimensions)
            for field_name, field_type in INDEXED_FIELDS:
                await self.store.create_index(self.collection_name, field_name, field_type)
        except Exception:
            logger.exception("Failed to initialize collection %s", self.collection_name)
            raise
        logger.info("RAG engine ready on collection %s", self.collection_name)

    async def store_transcripts(self, meeting_id: str, fragments: list[RawFragment]) -> int:
        """Chunk, embed and upsert *fragments*; returns the number of points written.

        Point ids are content hashes, so storing the same fragments twice
        leaves the collection unchanged. Vectors of the wrong dimension are
        skipped. Embedding and upsert failures propagate.
        """
        if not fragments:
            return 0

        chunks = chunk_fragments(fragments, window_ms=self.chunk_window_ms)
        contents = [chunk.content for chunk in chunks]
        vectors = await self.embeddings.embed_batch(contents)

        points: list[VectorPoint] = []
        for chunk, content, vector in zip(chunks, contents, vectors, strict=True):
            if len(vector) != self.dimensions:
                logger.warning(
                    "Skipping chunk with %d-dimensional vector (expected %d) for meeting %s",
                    len(vector),
                    self.dimensions,
                    meeting_id,
                )
                continue
            content_hash = hashlib.md5(content.strip().encode()).hexdigest()
            points.append(
                VectorPoint(
                    id=point_id(content, chunk.timestamp),
                    vector=vector,
                    payload={
                        "meeting_id": meeting_id,
                        "speaker_id": chunk.speaker_id,
                        "speaker_name": chunk.speaker_name,
                        "content": content,
                        "text": chunk.text,
                        "timestamp": chunk.timestamp,
                        "segment_count": chunk.segment_count,
                        "content_hash": content_hash,
                    },
                )
            )

        # A redelivered fragment repeats a point id; one upsert needs unique ids.
        points = list({point.id: point for point in points}.values())
        if points:
            await self.store.upsert(self.collection_name, points)
        logger.info(
            "Stored %d vectors from %d fragments for meeting %s",
            len(points),
            len(fragments),
            meeting_id,
        )
        return len(points)

    async def search_similar_content(
        self, meeting_id: str, question: str, limit: int | None = None
    ) -> list[SearchResult]:
        try:
            vector = await self.embeddings.embed(question)
            hits = await self.store.search(
                self.collection_name,
                vector,
                limit=limit or self.search_limit,
                filter={"meeting_id": meeting_id},
            )
        except Exception as exc:
            logger.exception("Similarity search failed for meeting %s", meeting_id)
            raise RetrievalError("Failed to search transcript data") from exc

        results = [
            SearchResult(
                content=str(hit.payload.get("content", "")),
                speaker_id=str(hit.payload.get("speaker_id", "")),
                speaker_name=str(hit.payload.get("speaker_name", "Unknown")),
                timestamp=int(hit.payload.get("timestamp", 0)),
                score=hit.score,
            )
            for hit in hits
        ]
        logger.info("Found %d similar chunks for meeting %s", len(results), meeting_id)
        return results

    async def generate_answer(self, question: str, results: list[SearchResult]) -> RAGAnswer:
        context = "\n\n".join(
            f"[{i}] {r.speaker_name} ({format_offset(r.timestamp)}): {r.content}"
            for i, r in enumerate(results, start=1)
        )
        try:
            prompt = self.prompts.render("qa", context=context, question=question)
            result = await self.model.generate(prompt)
        except Exception as exc:
            logger.exception("Answer generation failed")
            raise GenerationError("Failed to generate answer") from exc

        answer = result.text.strip() or EMPTY_ANSWER
        logger.info("Generated answer for question: %.50s", question)
        return RAGAnswer(answer=answer, sources=[_preview(r.content) for r in results])

    async def ask_question(self, meeting_id: str, user_id: str, question: str) -> QAEntry:
        """Answer *question* from the meeting's transcript and record the exchange.

        With no matching transcript data the model is not called and a fixed
        answer is recorded. On failure an ERROR entry with a user-facing
        message is recorded and the exception is re-raised.
        """
        logger.info("Processing question for meeting %s: %.80s", meeting_id, question)
        try:
            results = await self.search_similar_content(meeting_id, question)
            if not results:
                entry = QAEntry(
                    meeting_id=meeting_id,
                    user_id=user_id,
                    question=question,
                    answer=NO_DATA_ANSWER,
                    status=QAStatus.ANSWERED,
                    sources=[],
                )
            else:
                answer = await self.generate_answer(question, results)
                entry = QAEntry(
                    meeting_id=meeting_id,
                    user_id=user_id,
                    question=question,
                    answer=answer.answer,
                    status=QAStatus.ANSWERED,
                    sources=answer.sources,
                )
            return await self.repository.save_qa_entry(entry)
        except Exception as exc:
            if isinstance(exc, RetrievalError):
                message = RETRIEVAL_ERROR_ANSWER
            elif isinstance(exc, GenerationError):
                message = GENERATION_ERROR_ANSWER
            else:
                message = GENERIC_ERROR_ANSWER
            await self._record_error(meeting_id, user_id, question, message)
            raise

    async def _record_error(
        self, meeting_id: str, user_id: str, question: str, message: str
    ) -> None:
        entry = QAEntry(
            meeting_id=meeting_id,
            user_id=user_id,
            question=question,
            answer=message,
            status=QAStatus.ERROR,
            sources=[],
        )
        try:
            await self.repository.save_qa_entry(entry)
        except Exception:
            logger.exception("Could not record failed question for meeting %s", meeting_id)

    async def generate_summary(self, meeting_id: str, fragments: list[RawFragment]) -> str:
        """Rolling summary of *fragments*; empty input gives an empty summary."""
        if not fragments:
            return ""
        conversation = "\n".join(f"{f.speaker_name}: {f.text}" for f in fragments)
        try:
            prompt = self.prompts.render("summary", conversation=conversation)
            result = await self.model.generate(prompt)
        except Exception as exc:
            raise GenerationError(f"Failed to summarize meeting {meeting_id}") from exc
        summary = result.text.strip()
        logger.info("Generated summary for meeting %s: %.100s", meeting_id, summary)
        return summary

    async def delete_meeting_vectors(self, meeting_id: str) -> None:
        await self.store.delete_by_filter(self.collection_name, {"meeting_id": meeting_id})
        logger.info("Deleted vectors for meeting %s", meeting_id)
