from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Chroma: HTTP when chroma_host is set, otherwise a local persistent store
    chroma_host: str = ""
    chroma_port: int = 8000
    chroma_path: str = ".chroma"

    # Models
    llm_model: str = "claude-sonnet-4-20250514"
    answer_max_tokens: int = 1024
    answer_temperature: float = 0.2
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    embedding_workers: int = 2
    embedding_batch_size: int = 10
    embedding_cache_size: int = 5000
    embedding_cache_ttl_seconds: int = 3 * 24 * 60 * 60

    # Retrieval
    vector_collection: str = "meeting_transcripts"
    search_limit: int = 10
    chunk_window_ms: int = 60_000

    # Transcript buffering
    max_buffer_size: int = 200
    max_buffer_age_seconds: float = 120.0
    flush_interval_seconds: float = 60.0
    max_concurrent_meetings: int = 100

    # Job processing
    job_concurrency: int = 2
    job_max_attempts: int = 3
    job_retry_base_delay: float = 1.0

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
