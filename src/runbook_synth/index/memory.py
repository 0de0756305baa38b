"""
In-memory vector index with linear-scan cosine search

Mutations run under an ``asyncio.Lock`` and publish a new dict instead of
editing the live one, so a concurrent ``search`` always iterates a complete
snapshot and never sees a half-stored chunk.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Optional

from ..models import RetrievedChunk, RunbookChunk
from .base import ChunkFilter, cosine_similarity, rank

logger = logging.getLogger(__name__)


class InMemoryVectorIndex:
    """Minimum-footprint ``VectorIndex`` implementation"""

    def __init__(self):
        self._chunks: dict[str, RunbookChunk] = {}
        self._dimension: Optional[int] = None
        self._lock = asyncio.Lock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _merge(
        self, base: dict[str, RunbookChunk], chunks: Sequence[RunbookChunk]
    ) -> tuple[dict[str, RunbookChunk], Optional[int]]:
        """Validate a whole batch and return the candidate dict and dimension"""
        dimension = self._dimension
        updated = dict(base)
        for chunk in chunks:
            if chunk.embedding is None:
                raise ValueError(f"Chunk {chunk.id} has no embedding")
            expected = dimension or len(chunk.embedding)
            if len(chunk.embedding) != expected:
                raise ValueError(
                    f"Chunk {chunk.id} has dimension {len(chunk.embedding)}, index uses {expected}"
                )
            dimension = expected
            updated[chunk.id] = chunk
        return updated, dimension

    async def _commit(self, chunks: dict[str, RunbookChunk], dimension: Optional[int]) -> None:
        # Persist first: a failed write leaves the live snapshot unchanged.
        await self._persist(chunks, dimension)
        self._chunks = chunks
        self._dimension = dimension

    async def store(self, chunk: RunbookChunk) -> None:
        await self.store_all([chunk])

    async def store_all(self, chunks: Sequence[RunbookChunk]) -> None:
        if not chunks:
            return
        async with self._lock:
            updated, dimension = self._merge(self._chunks, chunks)
            await self._commit(updated, dimension)
        logger.debug(f"Stored {len(chunks)} chunks ({len(self._chunks)} total)")

    async def search(
        self,
        query_vector: Sequence[float],
        k: int,
        chunk_filter: Optional[ChunkFilter] = None,
    ) -> list[RetrievedChunk]:
        if k <= 0:
            return []

        snapshot = self._chunks
        scored = [
            RetrievedChunk.from_similarity(chunk, cosine_similarity(query_vector, chunk.embedding))
            for chunk in snapshot.values()
            if chunk.embedding is not None and (chunk_filter is None or chunk_filter(chunk))
        ]
        return rank(scored, k)

    async def delete(self, source_path: str) -> int:
        async with self._lock:
            kept = {
                chunk_id: chunk
                for chunk_id, chunk in self._chunks.items()
                if chunk.source_path != source_path
            }
            removed = len(self._chunks) - len(kept)
            if removed:
                await self._commit(kept, self._dimension)
        if removed:
            logger.debug(f"Deleted {removed} chunks for {source_path}")
        return removed

    async def replace_source(self, source_path: str, chunks: Sequence[RunbookChunk]) -> None:
        async with self._lock:
            kept = {
                chunk_id: chunk
                for chunk_id, chunk in self._chunks.items()
                if chunk.source_path != source_path
            }
            updated, dimension = self._merge(kept, chunks)
            await self._commit(updated, dimension)
        logger.debug(f"Replaced chunks of {source_path} with {len(chunks)} chunks")

    async def get_by_source(self, source_path: str) -> list[RunbookChunk]:
        chunks = [chunk for chunk in self._chunks.values() if chunk.source_path == source_path]
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    async def count(self) -> int:
        return len(self._chunks)

    async def _persist(self, chunks: dict[str, RunbookChunk], dimension: Optional[int]) -> None:
        """Hook for durable subclasses, called with the lock held before a mutation is published"""
