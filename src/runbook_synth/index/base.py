"""
Vector index contract and similarity math
"""

import math
from collections.abc import Sequence
from typing import Callable, Optional, Protocol, runtime_checkable

from ..models import RetrievedChunk, RunbookChunk

ChunkFilter = Callable[[RunbookChunk], bool]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors

    Returns 0.0 when either vector has zero magnitude.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")

    dot_product = sum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(sum(x * x for x in a))
    magnitude_b = math.sqrt(sum(y * y for y in b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot_product / (magnitude_a * magnitude_b)


def rank(scored: list[RetrievedChunk], k: int) -> list[RetrievedChunk]:
    """Order by descending score, ties by chunk id, and keep the first ``k``"""
    return sorted(scored, key=lambda item: (-item.score, item.chunk.id))[:k]


@runtime_checkable
class VectorIndex(Protocol):
    """Storage and cosine-similarity search over embedded runbook chunks"""

    async def store(self, chunk: RunbookChunk) -> None:
        """Insert or replace a chunk by id; the chunk must carry an embedding"""
        ...

    async def store_all(self, chunks: Sequence[RunbookChunk]) -> None:
        ...

    async def search(
        self,
        query_vector: Sequence[float],
        k: int,
        chunk_filter: Optional[ChunkFilter] = None,
    ) -> list[RetrievedChunk]:
        """Up to ``k`` chunks by descending cosine similarity, ties by id"""
        ...

    async def delete(self, source_path: str) -> int:
        """Remove every chunk of ``source_path``; returns how many were removed"""
        ...

    async def replace_source(self, source_path: str, chunks: Sequence[RunbookChunk]) -> None:
        """Swap all chunks of ``source_path`` for ``chunks`` in one step"""
        ...

    async def get_by_source(self, source_path: str) -> list[RunbookChunk]:
        ...

    async def count(self) -> int:
        ...
