"""
Runbook retrieval with metadata re-ranking

The query text combines the alert with the resource context. The index is
asked for ``2k`` candidates; each candidate then gets a metadata boost for
tags that the alert mentions and for an applicable-shape match, and the
top ``k`` by final score are returned.
"""

import asyncio
import fnmatch
import logging
from typing import Optional

from .adapters.base import EmbeddingPort
from .index.base import ChunkFilter, VectorIndex, rank
from .models import Alert, EnrichedContext, RetrievedChunk, RunbookChunk
from .observability.metrics import get_metrics
from .observability.tracer import set_attribute, trace_async

logger = logging.getLogger(__name__)

TAG_BOOST = 0.1
MAX_TAG_BOOST = 0.3
SHAPE_BOOST = 0.2
CANDIDATE_MULTIPLIER = 2
WILDCARD_SHAPES = {"*", "all"}


def shape_matches(pattern: str, shape: str) -> bool:
    """Case-insensitive glob match of an applicable-shape entry"""
    pattern = pattern.strip().lower()
    if pattern in WILDCARD_SHAPES:
        return True
    return fnmatch.fnmatchcase(shape.lower(), pattern)


def shape_filter(shape: str) -> ChunkFilter:
    """Keep chunks with no shape restriction or one matching ``shape``"""

    def accept(chunk: RunbookChunk) -> bool:
        shapes = chunk.applicable_shapes
        return not shapes or any(shape_matches(pattern, shape) for pattern in shapes)

    return accept


def build_query(alert: Alert, context: EnrichedContext) -> str:
    """Text embedded to search the index"""
    parts = [alert.title, alert.message]
    if context.resource is not None:
        if context.resource.shape:
            parts.append(f"shape: {context.resource.shape}")
        parts.extend(f"{key}: {value}" for key, value in sorted(context.resource.tags.items()))
    return "\n".join(part for part in parts if part)


def metadata_boost(chunk: RunbookChunk, alert: Alert, shape: Optional[str]) -> float:
    keys = {key.lower() for key in (*alert.dimensions, *alert.labels)}
    title = alert.title.lower()

    matches = sum(1 for tag in chunk.tags if tag.lower() in keys or tag.lower() in title)
    boost = min(matches * TAG_BOOST, MAX_TAG_BOOST)

    if shape and any(shape_matches(pattern, shape) for pattern in chunk.applicable_shapes):
        boost += SHAPE_BOOST
    return boost


class RunbookRetriever:
    """Embeds an alert query and ranks runbook chunks for it"""

    def __init__(self, embeddings: EmbeddingPort, index: VectorIndex, embed_timeout: float = 10.0):
        self.embeddings = embeddings
        self.index = index
        self.embed_timeout = embed_timeout

    @trace_async("retrieval.retrieve", record_result=True)
    async def retrieve(
        self, alert: Alert, context: EnrichedContext, k: int
    ) -> list[RetrievedChunk]:
        """
        Top ``k`` chunks for the enriched alert

        Returns an empty list, never raises, when the embedding port or the
        index fails.
        """
        if k <= 0:
            return []

        shape = context.resource.shape if context.resource else None

        try:
            query_vector = await asyncio.wait_for(
                self.embeddings.embed(build_query(alert, context)), timeout=self.embed_timeout
            )
            candidates = await self.index.search(
                query_vector,
                k * CANDIDATE_MULTIPLIER,
                shape_filter(shape) if shape else None,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Query embedding timed out for alert {alert.id}")
            return self._record([])
        except Exception as e:
            logger.warning(f"Retrieval failed for alert {alert.id}: {e}")
            return self._record([])

        reranked = []
        for candidate in candidates:
            boost = metadata_boost(candidate.chunk, alert, shape)
            reranked.append(
                candidate.model_copy(
                    update={"metadata_boost": boost, "score": candidate.similarity_score + boost}
                )
            )

        results = rank(reranked, k)
        set_attribute("retrieval.candidates", len(candidates))
        logger.debug(f"Retrieved {len(results)} chunks for alert {alert.id}")
        return self._record(results)

    @staticmethod
    def _record(results: list[RetrievedChunk]) -> list[RetrievedChunk]:
        metrics = get_metrics()
        if metrics:
            metrics.record_retrieval(len(results))
        return results
