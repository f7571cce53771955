"""Tests for MeetingCopilot wiring: bot state handling and shutdown ordering."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from meeting_copilot.meetings.models import MeetingStatus
from meeting_copilot.meetings.state_machine import MeetingStateMachine
from meeting_copilot.pipeline_config import PipelineConfig
from meeting_copilot.runtime import MeetingCopilot, MeetingNotFoundError

from factories import InMemoryRepository


def make_copilot(repository: InMemoryRepository) -> tuple[MeetingCopilot, MagicMock]:
    order = MagicMock()
    buffer = MagicMock()
    buffer.flush_and_clear = AsyncMock(return_value=0)
    buffer.shutdown = AsyncMock(side_effect=lambda: order("buffer"))
    jobs = MagicMock()
    jobs.shutdown = AsyncMock(side_effect=lambda: order("jobs"))
    embeddings = MagicMock()
    embeddings.shutdown.side_effect = lambda: order("embeddings")
    copilot = MeetingCopilot(
        PipelineConfig(),
        repository,
        embeddings,
        MagicMock(),
        jobs,
        buffer,
        MeetingStateMachine(buffer),
    )
    return copilot, order


class TestHandleBotState:
    @pytest.mark.asyncio
    async def test_unknown_meeting(self, repository: InMemoryRepository) -> None:
        copilot, _ = make_copilot(repository)
        with pytest.raises(MeetingNotFoundError):
            await copilot.handle_bot_state("missing", "joining")

    @pytest.mark.asyncio
    async def test_persists_new_status(self, repository: InMemoryRepository) -> None:
        repository.add_meeting("m1", MeetingStatus.SCHEDULED)
        copilot, _ = make_copilot(repository)

        result = await copilot.handle_bot_state("m1", "joining")

        assert result.success
        assert repository.meetings["m1"].status is MeetingStatus.LIVE

    @pytest.mark.asyncio
    async def test_rejected_transition_leaves_status(self, repository: InMemoryRepository) -> None:
        repository.add_meeting("m1", MeetingStatus.CANCELLED)
        copilot, _ = make_copilot(repository)

        result = await copilot.handle_bot_state("m1", "joining")

        assert not result.success
        assert repository.meetings["m1"].status is MeetingStatus.CANCELLED


class TestShutdown:
    @pytest.mark.asyncio
    async def test_order(self, repository: InMemoryRepository) -> None:
        copilot, order = make_copilot(repository)

        await copilot.shutdown()

        assert [c.args[0] for c in order.call_args_list] == ["buffer", "jobs", "embeddings"]
