"""
Runbook ingestion

Reads documents from the storage port, chunks them, embeds every chunk and
replaces the document's chunks in the vector index. Failures are isolated
per chunk and per document; a batch never aborts halfway.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Optional

from .adapters.base import EmbeddingPort, StoragePort
from .chunker import RunbookChunker
from .concurrency import AsyncSemaphore
from .config import RunbookSynthConfig
from .index.base import VectorIndex
from .models import IngestionResult, RunbookChunk
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_async

logger = logging.getLogger(__name__)


def embedding_text(chunk: RunbookChunk) -> str:
    """Text sent to the embedding port for one chunk"""
    return f"{chunk.section_title}\n\n{chunk.content}"


class IngestionService:
    """Populates the vector index from runbook storage"""

    def __init__(
        self,
        storage: StoragePort,
        chunker: RunbookChunker,
        embeddings: EmbeddingPort,
        index: VectorIndex,
        prefix: str = "",
        extensions: Sequence[str] = (".md",),
        embed_timeout: float = 10.0,
        max_concurrent: int = 4,
    ):
        self.storage = storage
        self.chunker = chunker
        self.embeddings = embeddings
        self.index = index
        self.prefix = prefix
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.embed_timeout = embed_timeout
        self._semaphore = AsyncSemaphore(max_concurrent, name="embedding")

    @classmethod
    def from_config(
        cls,
        config: RunbookSynthConfig,
        storage: StoragePort,
        embeddings: EmbeddingPort,
        index: VectorIndex,
    ) -> "IngestionService":
        chunker = RunbookChunker(
            max_chunk_size=config.chunking.max_chunk_size,
            min_chunk_size=config.chunking.min_chunk_size,
        )
        return cls(
            storage=storage,
            chunker=chunker,
            embeddings=embeddings,
            index=index,
            prefix=config.runbooks.prefix,
            extensions=config.runbooks.extensions,
            embed_timeout=config.embedding.timeout,
            max_concurrent=config.embedding.max_concurrent,
        )

    async def _embed_chunk(self, chunk: RunbookChunk) -> Optional[RunbookChunk]:
        try:
            async with self._semaphore.acquire():
                vector = await asyncio.wait_for(
                    self.embeddings.embed(embedding_text(chunk)), timeout=self.embed_timeout
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"Embedding timed out after {self.embed_timeout}s for "
                f"{chunk.source_path}#{chunk.chunk_index}"
            )
            return None
        except Exception as e:
            logger.warning(
                f"Embedding failed for {chunk.source_path}#{chunk.chunk_index}: {e}"
            )
            return None
        return chunk.with_embedding(vector)

    @trace_async("ingestion.ingest_one", record_args=True)
    async def ingest_one(self, path: str) -> IngestionResult:
        """
        Ingest one document

        The document's previous chunks are replaced only when at least one
        chunk could be embedded; a total embedding failure leaves the index
        untouched for that path.
        """
        failed = IngestionResult(documents_failed=1, failed_paths=[path])

        try:
            content = await self.storage.read(path)
        except Exception as e:
            logger.warning(f"Failed to read runbook {path}: {e}")
            return self._record(failed)

        if content is None:
            logger.warning(f"Runbook {path} not found in storage")
            return self._record(failed)

        try:
            chunks = self.chunker.chunk(content, path)
        except Exception as e:
            logger.warning(f"Failed to chunk runbook {path}: {e}")
            return self._record(failed)

        set_attribute("ingestion.chunks", len(chunks))
        if not chunks:
            try:
                await self.index.replace_source(path, [])
            except (ValueError, OSError) as e:
                logger.error(f"Failed to clear chunks of {path}: {e}")
                return self._record(failed)
            logger.info(f"Runbook {path} has no content; cleared its chunks")
            return self._record(IngestionResult(documents_processed=1))

        embedded = await asyncio.gather(*(self._embed_chunk(chunk) for chunk in chunks))
        stored = [chunk for chunk in embedded if chunk is not None]
        chunks_failed = len(chunks) - len(stored)

        if not stored:
            logger.error(f"Embedding failed for every chunk of {path}; keeping previous chunks")
            failed.chunks_failed = chunks_failed
            return self._record(failed)

        try:
            await self.index.replace_source(path, stored)
        except (ValueError, OSError) as e:
            logger.error(f"Failed to store chunks of {path}: {e}")
            failed.chunks_failed = len(chunks)
            return self._record(failed)

        add_event("document_ingested", {"path": path, "chunks": len(stored)})
        logger.info(
            f"Ingested {path}: {len(stored)} chunks stored, {chunks_failed} failed"
        )
        return self._record(
            IngestionResult(
                documents_processed=1,
                chunks_stored=len(stored),
                chunks_failed=chunks_failed,
            )
        )

    async def ingest_all(self, prefix: Optional[str] = None) -> IngestionResult:
        """
        Ingest every document under ``prefix`` matching the extension filter

        Raises:
            StorageError: If the document listing itself fails
        """
        prefix = self.prefix if prefix is None else prefix
        paths = [
            path
            for path in await self.storage.list_paths(prefix)
            if path.lower().endswith(self.extensions)
        ]
        logger.info(f"Ingesting {len(paths)} runbooks under '{prefix}'")

        total = IngestionResult()
        for path in paths:
            total = total + await self.ingest_one(path)

        stats = self._semaphore.get_stats()
        logger.info(
            f"Ingestion complete: {total.documents_processed} documents, "
            f"{total.chunks_stored} chunks stored, {total.documents_failed} documents failed "
            f"(embedding max hold {stats.max_hold_time:.2f}s)"
        )
        return total

    @staticmethod
    def _record(result: IngestionResult) -> IngestionResult:
        metrics = get_metrics()
        if metrics:
            metrics.record_ingestion(
                documents_processed=result.documents_processed,
                documents_failed=result.documents_failed,
                chunks_stored=result.chunks_stored,
                chunks_failed=result.chunks_failed,
            )
        return result


async def run_startup_ingestion(
    service: IngestionService, config: RunbookSynthConfig
) -> Optional[IngestionResult]:
    """
    Run ``ingest_all`` at process start when enabled

    Never raises: a failure or timeout is logged as a warning and the
    service starts with whatever the index already holds.
    """
    if not config.runbooks.ingest_on_startup:
        logger.info("Startup ingestion disabled")
        return None

    timeout = config.runbooks.startup_timeout
    try:
        return await asyncio.wait_for(service.ingest_all(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Startup ingestion timed out after {timeout}s; continuing")
    except Exception as e:
        logger.warning(f"Startup ingestion failed: {e}; continuing with current index")
    return None
