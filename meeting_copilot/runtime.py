"""Wiring of the live pipeline, plus its startup and shutdown ordering."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from meeting_copilot.config import Settings, get_settings
from meeting_copilot.ingestion.buffer import TranscriptBufferManager
from meeting_copilot.ingestion.embeddings import EmbeddingService
from meeting_copilot.ingestion.jobs import JobProcessor
from meeting_copilot.ingestion.models import RawFragment
from meeting_copilot.ingestion.pipeline import FlushHandler, ingest_fragment
from meeting_copilot.ingestion.storage import MeetingRepository, SupabaseMeetingRepository
from meeting_copilot.meetings.models import TransitionResult
from meeting_copilot.meetings.state_machine import MeetingStateMachine
from meeting_copilot.pipeline_config import PipelineConfig
from meeting_copilot.retrieval.generation import AnswerModel, AnthropicAnswerModel, PromptCache
from meeting_copilot.retrieval.models import QAEntry
from meeting_copilot.retrieval.rag import RAGEngine
from meeting_copilot.retrieval.vector_store import ChromaVectorStore, VectorStore

logger = logging.getLogger(__name__)


class MeetingNotFoundError(LookupError):
    pass


class MeetingCopilot:
    """The assembled pipeline and the operations the outer layers call."""

    def __init__(
        self,
        config: PipelineConfig,
        repository: MeetingRepository,
        embeddings: EmbeddingService,
        rag: RAGEngine,
        jobs: JobProcessor,
        buffer: TranscriptBufferManager,
        state_machine: MeetingStateMachine,
    ) -> None:
        self.config = config
        self.repository = repository
        self.embeddings = embeddings
        self.rag = rag
        self.jobs = jobs
        self.buffer = buffer
        self.state_machine = state_machine

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        *,
        repository: MeetingRepository | None = None,
        store: VectorStore | None = None,
        model: AnswerModel | None = None,
        embeddings: EmbeddingService | None = None,
        prompts: PromptCache | None = None,
    ) -> MeetingCopilot:
        """Assemble the pipeline; any collaborator not passed in is built from *settings*."""
        settings = settings or get_settings()
        config = PipelineConfig.from_settings(settings)

        repository = repository or SupabaseMeetingRepository.from_settings(settings)
        store = store or ChromaVectorStore.from_settings(settings)
        model = model or AnthropicAnswerModel.from_settings(settings)
        embeddings = embeddings or EmbeddingService.from_config(config.embedding)
        prompts = prompts or PromptCache()

        rag = RAGEngine.from_config(config, store, embeddings, model, prompts, repository)
        jobs = JobProcessor(config.retry)
        jobs.set_handler(FlushHandler(rag, repository))
        buffer = TranscriptBufferManager(jobs, repository, config.buffer)
        state_machine = MeetingStateMachine(buffer)
        return cls(config, repository, embeddings, rag, jobs, buffer, state_machine)

    async def start(self, warmup: bool = False) -> None:
        """Load prompt templates and prepare the vector collection.

        Raises:
            PromptTemplateError: If a template is missing.
        """
        self.rag.prompts.load()
        await self.rag.initialize()
        if warmup:
            await self.embeddings.pool.warmup()
        logger.info("Meeting copilot started")

    async def ingest(self, meeting_id: str, payload: dict[str, Any]) -> tuple[RawFragment, bool]:
        return await ingest_fragment(meeting_id, payload, self.repository, self.buffer)

    async def ask(self, meeting_id: str, user_id: str, question: str) -> QAEntry:
        return await self.rag.ask_question(meeting_id, user_id, question)

    async def list_questions(self, meeting_id: str, limit: int = 50) -> list[QAEntry]:
        return await self.repository.list_qa_entries(meeting_id, limit=limit)

    async def handle_bot_state(self, meeting_id: str, bot_state: str) -> TransitionResult:
        """Apply a bot state change to the meeting and persist the new status.

        Raises:
            MeetingNotFoundError: If the meeting does not exist.
        """
        meeting = await self.repository.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)

        result = await self.state_machine.transition_from_bot_state(meeting, bot_state)
        if result.success and result.previous_status != result.new_status:
            await self.repository.save_meeting_status(meeting_id, result.new_status)
        return result

    def stats(self) -> dict[str, Any]:
        return {
            "buffers": asdict(self.buffer.stats()),
            "jobs": asdict(self.jobs.stats()),
            "embedding_cache": asdict(self.embeddings.cache.stats()),
        }

    async def shutdown(self) -> None:
        """Flush buffers, drain the job queue, then stop the embedding workers."""
        logger.info("Shutting down meeting copilot")
        await self.buffer.shutdown()
        await self.jobs.shutdown()
        await asyncio.to_thread(self.embeddings.shutdown)
        logger.info("Meeting copilot stopped")
