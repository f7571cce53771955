"""Local sentence-transformers embeddings on a worker thread pool, behind a cache."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from meeting_copilot.ingestion.embedding_cache import EmbeddingCache
from meeting_copilot.pipeline_config import EmbeddingConfig

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str], Any]

_worker_state = threading.local()


def load_sentence_transformer(model_name: str) -> Any:
    """Load a sentence-transformers model (imported lazily, it is heavy)."""
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


def _init_worker(factory: ModelFactory, model_name: str) -> None:
    _worker_state.model = factory(model_name)
    logger.info(
        "Embedding worker %s loaded model %s", threading.current_thread().name, model_name
    )


def _encode_in_worker(texts: list[str]) -> list[list[float]]:
    model = _worker_state.model
    vectors = model.encode(texts, normalize_embeddings=True)
    return [[float(x) for x in vector] for vector in vectors]


class EmbeddingWorkerPool:
    """Fixed-size pool of threads, each owning its own embedding model.

    Only plain lists of strings go in and plain lists of floats come out.
    """

    def __init__(
        self,
        model_name: str,
        workers: int = 2,
        model_factory: ModelFactory = load_sentence_transformer,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.model_name = model_name
        self.workers = workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="embedding-worker",
            initializer=_init_worker,
            initargs=(model_factory, model_name),
        )
        self._closed = False

    async def encode(self, texts: Sequence[str]) -> list[list[float]]:
        if self._closed:
            raise RuntimeError("Embedding worker pool is shut down")
        if not texts:
            return []
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, _encode_in_worker, list(texts))

    async def warmup(self) -> None:
        """Start every worker so model loading happens before the first request."""
        await asyncio.gather(*(self.encode(["warmup"]) for _ in range(self.workers)))
        logger.info("Embedding pool warmed up (%d workers)", self.workers)

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        logger.info("Embedding worker pool shut down")


class EmbeddingService:
    """Cache-first embedding of single texts and batches."""

    def __init__(
        self,
        pool: EmbeddingWorkerPool,
        cache: EmbeddingCache | None = None,
        batch_size: int = 10,
    ) -> None:
        self.pool = pool
        self.cache = cache if cache is not None else EmbeddingCache()
        self.batch_size = batch_size

    @classmethod
    def from_config(
        cls,
        config: EmbeddingConfig,
        model_factory: ModelFactory = load_sentence_transformer,
    ) -> EmbeddingService:
        pool = EmbeddingWorkerPool(config.model_name, config.workers, model_factory)
        cache = EmbeddingCache(max_size=config.cache_size, ttl=config.cache_ttl)
        return cls(pool, cache, batch_size=config.batch_size)

    async def embed(self, text: str) -> list[float]:
        cached = self.cache.get(text)
        if cached is not None:
            return cached
        (vector,) = await self.pool.encode([text])
        self.cache.set(text, vector)
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per input in input order.

        Cache hits are served directly; misses go to the worker pool in
        sub-batches of ``batch_size``. Encoding failures propagate.
        """
        results: list[list[float] | None] = [None] * len(texts)
        missing: list[int] = []
        for i, text in enumerate(texts):
            cached = self.cache.get(text)
            if cached is not None:
                results[i] = cached
            else:
                missing.append(i)

        if missing:
            logger.info(
                "Embedding %d texts (%d cached)", len(missing), len(texts) - len(missing)
            )
        total_batches = (len(missing) + self.batch_size - 1) // self.batch_size

        for batch_no, start in enumerate(range(0, len(missing), self.batch_size), start=1):
            indices = missing[start : start + self.batch_size]
            vectors = await self.pool.encode([texts[i] for i in indices])
            for i, vector in zip(indices, vectors, strict=True):
                results[i] = vector
                self.cache.set(texts[i], vector)
            logger.debug("Embedded batch %d/%d", batch_no, total_batches)

        return [vector for vector in results if vector is not None]

    def shutdown(self) -> None:
        self.cache.log_stats()
        self.pool.shutdown()
