"""
Embedding adapters

- ``HashEmbeddings``: deterministic offline bag-of-words hashing, no model
  download; the default for local runs and tests.
- ``SentenceTransformerEmbeddings``: local sentence-transformers model
  (``pip install runbook-synth[local]``).
- ``OpenAIEmbeddings``: OpenAI-compatible embeddings endpoint.
"""

import asyncio
import hashlib
import logging
import math
import re
from collections.abc import Sequence
from typing import Optional

from ..config import EmbeddingConfig
from ..exceptions import EmbeddingError

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def _normalize(vector: list[float]) -> list[float]:
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


class HashEmbeddings:
    """
    Feature-hashing embedding

    Each lowercase alphanumeric token adds +/-1 to one bucket chosen by its
    SHA-256 digest; the vector is L2-normalised. Texts that share words
    therefore have positive cosine similarity.
    """

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_sync(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            vector[bucket] += 1.0 if digest[4] & 1 else -1.0
        return _normalize(vector)

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed_sync(text) for text in texts]


class SentenceTransformerEmbeddings:
    """sentence-transformers model, encoded in a worker thread"""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", dimension: Optional[int] = None):
        self.model_name = model_name
        self._model = None
        self._dimension = dimension
        self._load_lock = asyncio.Lock()

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            raise EmbeddingError(f"Model {self.model_name} not loaded yet")
        return self._dimension

    async def _get_model(self):
        async with self._load_lock:
            if self._model is None:
                self._model = await asyncio.to_thread(self._load_model)
        return self._model

    def _load_model(self):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingError(
                "sentence-transformers is not installed. "
                "Install with: pip install 'runbook-synth[local]'"
            ) from e

        logger.info(f"Loading sentence-transformers model: {self.model_name}")
        model = SentenceTransformer(self.model_name)
        model_dimension = model.get_sentence_embedding_dimension()
        if self._dimension is not None and model_dimension != self._dimension:
            raise EmbeddingError(
                f"Model {self.model_name} produces {model_dimension}-d vectors, "
                f"configured dimension is {self._dimension}"
            )
        self._dimension = model_dimension
        return model

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        model = await self._get_model()
        vectors = await asyncio.to_thread(model.encode, list(texts), normalize_embeddings=True)
        return [vector.tolist() for vector in vectors]


class OpenAIEmbeddings:
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint"""

    def __init__(self, config: EmbeddingConfig):
        self.config = config
        self._client = None

    @property
    def dimension(self) -> int:
        return self.config.dimension

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        response = await self._get_client().embeddings.create(
            model=self.config.model,
            input=list(texts),
            dimensions=self.config.dimension,
        )
        vectors = [item.embedding for item in sorted(response.data, key=lambda item: item.index)]
        for vector in vectors:
            if len(vector) != self.config.dimension:
                raise EmbeddingError(
                    f"Embedding has dimension {len(vector)}, expected {self.config.dimension}",
                    {"model": self.config.model},
                )
        return vectors
