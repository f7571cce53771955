"""Pipeline tuning: buffer limits, retry policy and embedding configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from meeting_copilot.config import Settings


@dataclass(frozen=True)
class BufferLimits:
    """Bounds that decide when a meeting's transcript buffer is flushed."""

    max_buffer_size: int = 200
    max_buffer_age: float = 120.0  # seconds
    flush_interval: float = 60.0  # seconds
    max_concurrent_meetings: int = 100
    final_flush_attempts: int = 3
    final_flush_retry_delay: float = 0.5  # seconds, multiplied by the attempt number


@dataclass(frozen=True)
class RetryPolicy:
    """Concurrency and retry behaviour of the job processor."""

    concurrency: int = 2
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds

    def backoff(self, attempt: int) -> float:
        """Delay before retrying a job that just failed its *attempt*-th run."""
        return self.base_delay * 2 ** (attempt - 1)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding model, worker pool and cache sizing."""

    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = 384
    workers: int = 2
    batch_size: int = 10
    cache_size: int = 5000
    cache_ttl: float = 3 * 24 * 60 * 60  # seconds


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the live transcript pipeline.

    Defaults mirror the production tuning; ``from_settings`` reads the
    overrides from the environment.
    """

    buffer: BufferLimits = field(default_factory=BufferLimits)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    chunk_window_ms: int = 60_000
    collection_name: str = "meeting_transcripts"
    search_limit: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            buffer=BufferLimits(
                max_buffer_size=settings.max_buffer_size,
                max_buffer_age=settings.max_buffer_age_seconds,
                flush_interval=settings.flush_interval_seconds,
                max_concurrent_meetings=settings.max_concurrent_meetings,
            ),
            retry=RetryPolicy(
                concurrency=settings.job_concurrency,
                max_attempts=settings.job_max_attempts,
                base_delay=settings.job_retry_base_delay,
            ),
            embedding=EmbeddingConfig(
                model_name=settings.embedding_model,
                dimensions=settings.embedding_dimensions,
                workers=settings.embedding_workers,
                batch_size=settings.embedding_batch_size,
                cache_size=settings.embedding_cache_size,
                cache_ttl=float(settings.embedding_cache_ttl_seconds),
            ),
            chunk_window_ms=settings.chunk_window_ms,
            collection_name=settings.vector_collection,
            search_limit=settings.search_limit,
        )
