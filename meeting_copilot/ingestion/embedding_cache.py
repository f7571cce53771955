"""Content-hash keyed, size-bounded, expiring cache for embedding vectors."""

from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float  # percent, two decimals


class EmbeddingCache:
    """LRU cache of embeddings with a time-to-live renewed on every hit.

    Keys are the md5 of the trimmed text, so whitespace-only differences
    share an entry. Only touched from the event loop thread.
    """

    def __init__(
        self,
        max_size: int = 5000,
        ttl: float = 3 * 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, list[float]]] = OrderedDict()
        self._hits = 0
        self._misses = 0
        logger.info("Embedding cache initialized with max size %d, TTL %.0fs", max_size, ttl)

    @staticmethod
    def hash_text(text: str) -> str:
        return hashlib.md5(text.strip().encode("utf-8")).hexdigest()

    def get(self, text: str) -> list[float] | None:
        key = self.hash_text(text)
        entry = self._entries.get(key)
        now = self._clock()

        if entry is None or entry[0] <= now:
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            logger.debug("Cache miss for text: %.50s", text)
            return None

        vector = entry[1]
        self._entries[key] = (now + self._ttl, vector)
        self._entries.move_to_end(key)
        self._hits += 1
        logger.debug("Cache hit for text: %.50s", text)
        return vector

    def set(self, text: str, vector: list[float]) -> None:
        key = self.hash_text(text)
        self._entries[key] = (self._clock() + self._ttl, vector)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total else 0.0
        return CacheStats(
            size=len(self._entries),
            max_size=self._max_size,
            hits=self._hits,
            misses=self._misses,
            hit_rate=round(hit_rate, 2),
        )

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        logger.info("Embedding cache cleared")

    def log_stats(self) -> None:
        s = self.stats()
        logger.info(
            "Cache stats - size: %d/%d, hits: %d, misses: %d, hit rate: %.2f%%",
            s.size,
            s.max_size,
            s.hits,
            s.misses,
            s.hit_rate,
        )
