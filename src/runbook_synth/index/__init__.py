"""
Vector index backends
"""

from ..config import VectorStoreConfig
from .base import ChunkFilter, VectorIndex, cosine_similarity
from .file_store import JsonFileVectorIndex
from .memory import InMemoryVectorIndex

SUPPORTED_PROVIDERS = ("memory", "file")


def create_vector_index(config: VectorStoreConfig) -> VectorIndex:
    """Select the index backend named by ``config.provider``"""
    if config.provider == "memory":
        return InMemoryVectorIndex()
    if config.provider == "file":
        return JsonFileVectorIndex(config.path)
    raise ValueError(
        f"Unknown vector store provider '{config.provider}'. "
        f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )


__all__ = [
    "ChunkFilter",
    "VectorIndex",
    "cosine_similarity",
    "InMemoryVectorIndex",
    "JsonFileVectorIndex",
    "create_vector_index",
]
