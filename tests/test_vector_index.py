"""
Test suite for vector index implementations

Covers cosine ranking, the k bound, deterministic tie-breaks, metadata
filters, path-scoped deletion and the JSON file backend.
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from runbook_synth.config import VectorStoreConfig
from runbook_synth.exceptions import StorageError
from runbook_synth.index import create_vector_index
from runbook_synth.index.base import cosine_similarity
from runbook_synth.index.file_store import JsonFileVectorIndex
from runbook_synth.index.memory import InMemoryVectorIndex
from runbook_synth.models import RunbookChunk, RunbookFrontmatter, make_chunk_id


def make_chunk(path: str, index: int, embedding, shapes=(), content=None) -> RunbookChunk:
    return RunbookChunk(
        id=make_chunk_id(path, index),
        content=content or f"content {path} {index}",
        source_path=path,
        section_title="Section",
        chunk_index=index,
        metadata=RunbookFrontmatter(applicable_shapes=tuple(shapes)),
        embedding=tuple(embedding),
    )


class TestCosineSimilarity:
    """Test the similarity function"""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_magnitude_independent(self):
        assert cosine_similarity([1.0, 1.0], [5.0, 5.0]) == pytest.approx(1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestInMemoryVectorIndex:
    """Test the in-memory index contract"""

    @pytest.mark.asyncio
    async def test_query_equal_to_stored_vector_ranks_first(self, vector_index):
        chunks = [
            make_chunk("a.md", 0, [1.0, 0.0, 0.0]),
            make_chunk("a.md", 1, [0.6, 0.8, 0.0]),
            make_chunk("b.md", 0, [0.0, 0.0, 1.0]),
        ]
        await vector_index.store_all(chunks)

        results = await vector_index.search([0.6, 0.8, 0.0], k=3)

        assert results[0].chunk.id == chunks[1].id
        assert results[0].similarity_score == pytest.approx(1.0)
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)

    @pytest.mark.asyncio
    async def test_k_bound(self, vector_index):
        for i in range(5):
            await vector_index.store(make_chunk("doc.md", i, [1.0, float(i)]))

        assert len(await vector_index.search([1.0, 0.0], k=3)) == 3
        assert len(await vector_index.search([1.0, 0.0], k=10)) == 5
        assert await vector_index.search([1.0, 0.0], k=0) == []

    @pytest.mark.asyncio
    async def test_empty_index_returns_empty(self, vector_index):
        assert await vector_index.search([1.0, 0.0], k=5) == []

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self, vector_index):
        chunks = [make_chunk(f"doc-{i}.md", 0, [1.0, 0.0]) for i in range(4)]
        await vector_index.store_all(list(reversed(chunks)))

        results = await vector_index.search([1.0, 0.0], k=4)

        assert [r.chunk.id for r in results] == sorted(c.id for c in chunks)

    @pytest.mark.asyncio
    async def test_filter_applies_before_ranking(self, vector_index):
        vm = make_chunk("vm.md", 0, [0.0, 1.0], shapes=["VM.*"])
        bm = make_chunk("bm.md", 0, [1.0, 0.0], shapes=["BM.*"])
        await vector_index.store_all([vm, bm])

        results = await vector_index.search(
            [1.0, 0.0], k=2, chunk_filter=lambda c: "VM.*" in c.applicable_shapes
        )

        assert [r.chunk.id for r in results] == [vm.id]

    @pytest.mark.asyncio
    async def test_store_replaces_same_id(self, vector_index):
        await vector_index.store(make_chunk("a.md", 0, [1.0, 0.0], content="old"))
        await vector_index.store(make_chunk("a.md", 0, [1.0, 0.0], content="new"))

        assert await vector_index.count() == 1
        stored = await vector_index.get_by_source("a.md")
        assert stored[0].content == "new"

    @pytest.mark.asyncio
    async def test_rejects_missing_embedding_and_dimension_mismatch(self, vector_index):
        bare = RunbookChunk(
            id="x", content="c", source_path="a.md", section_title="S", chunk_index=0
        )
        with pytest.raises(ValueError):
            await vector_index.store(bare)

        await vector_index.store(make_chunk("a.md", 0, [1.0, 0.0]))
        with pytest.raises(ValueError):
            await vector_index.store(make_chunk("a.md", 1, [1.0, 0.0, 0.0]))

    @pytest.mark.asyncio
    async def test_rejected_batch_leaves_index_untouched(self, vector_index):
        batch = [make_chunk("a.md", 0, [1.0, 0.0]), make_chunk("a.md", 1, [1.0, 0.0, 0.0])]

        with pytest.raises(ValueError):
            await vector_index.store_all(batch)

        assert await vector_index.count() == 0
        assert vector_index.dimension is None
        await vector_index.store(make_chunk("b.md", 0, [1.0, 0.0, 0.0]))
        assert vector_index.dimension == 3

    @pytest.mark.asyncio
    async def test_delete_by_source_path(self, vector_index):
        await vector_index.store_all(
            [make_chunk("a.md", 0, [1.0, 0.0]), make_chunk("a.md", 1, [0.0, 1.0]), make_chunk("b.md", 0, [1.0, 1.0])]
        )

        removed = await vector_index.delete("a.md")

        assert removed == 2
        assert await vector_index.get_by_source("a.md") == []
        assert await vector_index.count() == 1
        assert await vector_index.delete("missing.md") == 0

    @pytest.mark.asyncio
    async def test_replace_source_drops_stale_chunks(self, vector_index):
        await vector_index.store_all([make_chunk("a.md", i, [1.0, float(i)]) for i in range(3)])

        await vector_index.replace_source("a.md", [make_chunk("a.md", 0, [1.0, 0.0])])

        remaining = await vector_index.get_by_source("a.md")
        assert [c.chunk_index for c in remaining] == [0]

    @pytest.mark.asyncio
    async def test_concurrent_search_during_ingestion(self, vector_index):
        """Searches interleaved with writes only ever see complete chunks"""

        async def writer():
            for i in range(50):
                await vector_index.replace_source("doc.md", [make_chunk("doc.md", j, [1.0, float(i)]) for j in range(3)])
                await asyncio.sleep(0)

        async def reader():
            for _ in range(50):
                for result in await vector_index.search([1.0, 0.0], k=5):
                    assert result.chunk.embedding is not None
                    assert len(result.chunk.embedding) == 2
                await asyncio.sleep(0)

        await asyncio.gather(writer(), reader(), reader())
        assert await vector_index.count() == 3


class TestJsonFileVectorIndex:
    """Test the file-backed index"""

    @pytest.mark.asyncio
    async def test_persists_and_reloads(self, tmp_path):
        path = tmp_path / "index" / "chunks.json"
        index = JsonFileVectorIndex(str(path))
        chunks = [make_chunk("a.md", 0, [1.0, 0.0]), make_chunk("b.md", 0, [0.0, 1.0])]
        await index.store_all(chunks)

        reloaded = JsonFileVectorIndex(str(path))

        assert await reloaded.count() == 2
        results = await reloaded.search([0.0, 1.0], k=1)
        assert results[0].chunk.id == chunks[1].id
        assert reloaded.dimension == 2

    @pytest.mark.asyncio
    async def test_delete_is_persisted(self, tmp_path):
        path = tmp_path / "chunks.json"
        index = JsonFileVectorIndex(str(path))
        await index.store_all([make_chunk("a.md", 0, [1.0, 0.0]), make_chunk("b.md", 0, [0.0, 1.0])])
        await index.delete("a.md")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [item["source_path"] for item in data["chunks"]] == ["b.md"]
        assert not list(tmp_path.glob(".index-*.tmp"))

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_and_disk_in_step(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        index = JsonFileVectorIndex(str(blocker / "chunks.json"))

        with pytest.raises(OSError):
            await index.store(make_chunk("a.md", 0, [1.0, 0.0]))

        assert await index.count() == 0
        assert index.dimension is None
        assert await index.search([1.0, 0.0], k=5) == []

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_chunks(self, tmp_path):
        path = tmp_path / "chunks.json"
        index = JsonFileVectorIndex(str(path))
        await index.store_all([make_chunk("a.md", 0, [1.0, 0.0]), make_chunk("b.md", 0, [0.0, 1.0])])

        with patch.object(index, "_write", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                await index.delete("a.md")

        assert await index.count() == 2
        assert len(json.loads(path.read_text(encoding="utf-8"))["chunks"]) == 2

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "chunks.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            JsonFileVectorIndex(str(path))


class TestCreateVectorIndex:
    """Test backend selection"""

    def test_memory(self):
        assert isinstance(create_vector_index(VectorStoreConfig()), InMemoryVectorIndex)

    def test_file(self, tmp_path):
        index = create_vector_index(VectorStoreConfig(provider="file", path=str(tmp_path / "i.json")))
        assert isinstance(index, JsonFileVectorIndex)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown vector store"):
            create_vector_index(VectorStoreConfig(provider="qdrant"))
