"""Vector store abstraction and its Chroma implementation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import chromadb

from meeting_copilot.config import Settings
from meeting_copilot.ingestion.models import VectorPoint

logger = logging.getLogger(__name__)


@dataclass
class VectorSearchHit:
    id: str
    score: float  # cosine similarity, higher is closer
    payload: dict[str, Any]


class VectorStore(Protocol):
    async def initialize_collection(
        self, name: str, dimensions: int, config: dict[str, Any] | None = None
    ) -> None: ...

    async def collection_exists(self, name: str) -> bool: ...

    async def upsert(self, name: str, points: list[VectorPoint]) -> None: ...

    async def search(
        self,
        name: str,
        vector: list[float],
        limit: int = 10,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorSearchHit]: ...

    async def delete(self, name: str, ids: list[str]) -> None: ...

    async def delete_by_filter(self, name: str, filter: dict[str, Any]) -> None: ...

    async def create_index(self, name: str, field_name: str, field_type: str) -> None: ...


def build_chroma_client(settings: Settings) -> Any:
    """HTTP client when a host is configured, else an on-disk client."""
    if settings.chroma_host:
        logger.info("Connecting to Chroma at %s:%d", settings.chroma_host, settings.chroma_port)
        return chromadb.HttpClient(host=settings.chroma_host, port=settings.chroma_port)
    if settings.chroma_path:
        logger.info("Using persistent Chroma store at %s", settings.chroma_path)
        return chromadb.PersistentClient(path=settings.chroma_path)
    return chromadb.EphemeralClient()


def _to_where(filter: dict[str, Any] | None) -> dict[str, Any] | None:
    """Exact-match payload filter to a Chroma ``where`` clause."""
    if not filter:
        return None
    if len(filter) == 1:
        return dict(filter)
    return {"$and": [{key: value} for key, value in filter.items()]}


class ChromaVectorStore:
    """:class:`VectorStore` over a Chroma client, using cosine distance.

    The collection's dimension is recorded in its metadata at creation and
    enforced on upsert. Chroma calls are synchronous, so they run in a
    worker thread.
    """

    def __init__(self, client: Any) -> None:
        self.client = client
        self._collections: dict[str, Any] = {}
        self._indexes: dict[str, dict[str, str]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ChromaVectorStore:
        return cls(build_chroma_client(settings))

    async def _collection(self, name: str) -> Any:
        collection = self._collections.get(name)
        if collection is None:
            collection = await asyncio.to_thread(self.client.get_collection, name=name)
            self._collections[name] = collection
        return collection

    async def initialize_collection(
        self, name: str, dimensions: int, config: dict[str, Any] | None = None
    ) -> None:
        if await self.collection_exists(name):
            collection = await self._collection(name)
            existing = (collection.metadata or {}).get("dimensions")
            if existing is not None and existing != dimensions:
                raise ValueError(
                    f"Collection {name!r} has dimension {existing}, expected {dimensions}"
                )
            logger.info("Collection %s already exists", name)
            return

        metadata: dict[str, Any] = {"hnsw:space": "cosine", "dimensions": dimensions}
        if config:
            metadata.update(config)
        collection = await asyncio.to_thread(
            self.client.create_collection, name=name, metadata=metadata
        )
        self._collections[name] = collection
        logger.info("Created collection %s (%d dimensions)", name, dimensions)

    async def collection_exists(self, name: str) -> bool:
        if name in self._collections:
            return True
        try:
            await self._collection(name)
        except Exception:
            return False
        return True

    async def upsert(self, name: str, points: list[VectorPoint]) -> None:
        if not points:
            return
        collection = await self._collection(name)
        dimensions = (collection.metadata or {}).get("dimensions")
        if dimensions is not None:
            for point in points:
                if len(point.vector) != dimensions:
                    raise ValueError(
                        f"Point {point.id} has {len(point.vector)} dimensions, "
                        f"collection {name!r} expects {dimensions}"
                    )

        await asyncio.to_thread(
            collection.upsert,
            ids=[p.id for p in points],
            embeddings=[p.vector for p in points],
            documents=[str(p.payload.get("content", "")) for p in points],
            metadatas=[p.payload for p in points],
        )
        logger.debug("Upserted %d points into %s", len(points), name)

    async def search(
        self,
        name: str,
        vector: list[float],
        limit: int = 10,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorSearchHit]:
        collection = await self._collection(name)
        result = await asyncio.to_thread(
            collection.query,
            query_embeddings=[vector],
            n_results=limit,
            where=_to_where(filter),
            include=["metadatas", "distances"],
        )

        ids = result["ids"][0] if result["ids"] else []
        metadatas = result["metadatas"][0] if result.get("metadatas") else []
        distances = result["distances"][0] if result.get("distances") else []
        return [
            VectorSearchHit(id=point_id, score=1.0 - float(distance), payload=dict(metadata or {}))
            for point_id, metadata, distance in zip(ids, metadatas, distances, strict=True)
        ]

    async def delete(self, name: str, ids: list[str]) -> None:
        if not ids:
            return
        collection = await self._collection(name)
        await asyncio.to_thread(collection.delete, ids=ids)

    async def delete_by_filter(self, name: str, filter: dict[str, Any]) -> None:
        if not filter:
            raise ValueError("delete_by_filter needs at least one condition")
        collection = await self._collection(name)
        await asyncio.to_thread(collection.delete, where=_to_where(filter))

    async def create_index(self, name: str, field_name: str, field_type: str) -> None:
        """Declare a filterable payload field.

        Chroma indexes metadata on its own, so this only checks the
        collection exists and records the declaration. Declaring the same
        field again is a no-op.
        """
        await self._collection(name)
        declared = self._indexes.setdefault(name, {})
        if field_name in declared:
            logger.debug("Index on %s.%s already declared", name, field_name)
            return
        declared[field_name] = field_type
        logger.info("Declared %s index on %s.%s", field_type, name, field_name)
