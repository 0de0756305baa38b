"""
Test suite for the markdown runbook chunker

Covers frontmatter parsing, section splitting, size enforcement and the
boundary fallback order used when a section exceeds the size limit.
"""

import pytest

from runbook_synth.chunker import RunbookChunker, parse_frontmatter, split_sections
from runbook_synth.models import make_chunk_id


class TestParseFrontmatter:
    """Test frontmatter extraction"""

    def test_parses_title_tags_and_shapes(self):
        content = "---\ntitle: Disk full\ntags: [disk, storage]\napplicable_shapes: VM.*, BM.*\nowner: sre\n---\nBody text"
        frontmatter, body = parse_frontmatter(content)

        assert frontmatter.title == "Disk full"
        assert frontmatter.tags == ("disk", "storage")
        assert frontmatter.applicable_shapes == ("VM.*", "BM.*")
        assert frontmatter.extra == {"owner": "sre"}
        assert body == "Body text"

    def test_document_without_frontmatter(self):
        frontmatter, body = parse_frontmatter("## Section\n\ntext")

        assert frontmatter.tags == ()
        assert body == "## Section\n\ntext"

    def test_malformed_frontmatter_is_ignored(self):
        frontmatter, body = parse_frontmatter("---\ntags: [unclosed\n---\nBody")

        assert frontmatter.title is None
        assert frontmatter.tags == ()
        assert body == "Body"

    def test_non_string_keys_are_stringified(self):
        frontmatter, body = parse_frontmatter(
            "---\ntitle: Disk\n2024: reviewed\ntrue: x\n---\nBody"
        )

        assert frontmatter.title == "Disk"
        assert frontmatter.extra == {"2024": "reviewed", "True": "x"}
        assert body == "Body"


class TestSplitSections:
    """Test header-based section splitting"""

    def test_two_header_levels(self):
        body = "Intro text\n\n## Major\n\nmajor text\n\n### Minor\n\nminor text"
        assert split_sections(body) == [
            ("Introduction", "Intro text"),
            ("Major", "major text"),
            ("Minor", "minor text"),
        ]

    def test_headers_inside_code_fences_are_ignored(self):
        body = "## Steps\n\n```bash\n## not a header\necho hi\n```\n"
        sections = split_sections(body)

        assert len(sections) == 1
        assert sections[0][0] == "Steps"
        assert "## not a header" in sections[0][1]

    def test_level_one_and_four_headers_do_not_split(self):
        sections = split_sections("# Title\n\ntext\n\n#### Detail\n\nmore")
        assert len(sections) == 1


class TestRunbookChunker:
    """Test chunk production"""

    def test_empty_document_yields_no_chunks(self):
        chunker = RunbookChunker()
        assert chunker.chunk("", "empty.md") == []
        assert chunker.chunk("   \n\n  ", "blank.md") == []

    def test_document_without_headers_is_one_chunk(self):
        chunker = RunbookChunker()
        chunks = chunker.chunk("Just a paragraph of guidance for operators.", "plain.md")

        assert len(chunks) == 1
        assert chunks[0].section_title == "Introduction"
        assert chunks[0].chunk_index == 0

    def test_chunking_is_deterministic(self, high_memory_runbook):
        chunker = RunbookChunker()
        first = chunker.chunk(high_memory_runbook, "memory/high-memory.md")
        second = chunker.chunk(high_memory_runbook, "memory/high-memory.md")

        assert [c.id for c in first] == [c.id for c in second]
        assert [c.content for c in first] == [c.content for c in second]
        assert [c.chunk_index for c in first] == list(range(len(first)))

    def test_ids_derive_from_path_and_index(self, high_memory_runbook):
        chunks = RunbookChunker().chunk(high_memory_runbook, "memory/high-memory.md")

        for chunk in chunks:
            assert chunk.id == make_chunk_id("memory/high-memory.md", chunk.chunk_index)
        assert len({chunk.id for chunk in chunks}) == len(chunks)

    def test_frontmatter_propagates_to_every_chunk(self, high_memory_runbook):
        chunks = RunbookChunker().chunk(high_memory_runbook, "memory/high-memory.md")
        frontmatter, _ = parse_frontmatter(high_memory_runbook)

        assert len(chunks) > 1
        for chunk in chunks:
            assert chunk.metadata == frontmatter
            assert chunk.tags == ("memory", "oom")
            assert chunk.applicable_shapes == ("VM.*",)

    def test_high_memory_runbook_scenario(self, high_memory_runbook):
        """Symptoms stays whole; the oversized Remediation section is split"""
        chunker = RunbookChunker(max_chunk_size=2000)
        chunks = chunker.chunk(high_memory_runbook, "memory/high-memory.md")

        symptoms = [c for c in chunks if c.section_title == "Symptoms"]
        remediation = [c for c in chunks if c.section_title == "Remediation"]

        assert len(symptoms) == 1
        assert len(remediation) >= 2
        assert all(len(c.content) <= 2000 for c in chunks)
        assert all(c.source_path == "memory/high-memory.md" for c in chunks)

    def test_oversized_section_splits_at_paragraphs(self, high_memory_runbook):
        chunks = RunbookChunker(max_chunk_size=2000).chunk(high_memory_runbook, "m.md")

        for chunk in chunks:
            if chunk.section_title == "Remediation":
                assert chunk.content.startswith("Step ")
                assert chunk.content.endswith(".")

    def test_sentence_boundary_when_no_paragraph_breaks(self):
        text = " ".join(f"Sentence number {i} has a handful of filler words." for i in range(40))
        chunker = RunbookChunker(max_chunk_size=300, min_chunk_size=50)
        chunks = chunker.chunk(f"## Notes\n\n{text}", "notes.md")

        assert len(chunks) > 1
        for chunk in chunks:
            assert len(chunk.content) <= 300
            assert chunk.content.endswith(".")
            assert chunk.section_title == "Notes"

    def test_never_cuts_mid_word_when_whitespace_exists(self):
        text = "alpha " * 600
        chunks = RunbookChunker(max_chunk_size=250, min_chunk_size=20).chunk(text, "words.md")

        assert len(chunks) > 1
        for chunk in chunks:
            assert len(chunk.content) <= 250
            assert set(chunk.content.split()) == {"alpha"}

    def test_hard_cut_is_last_resort(self):
        """A body without any whitespace falls back to fixed-size cuts"""
        text = "x" * 5000
        chunks = RunbookChunker(max_chunk_size=2000, min_chunk_size=100).chunk(text, "blob.md")

        assert [len(c.content) for c in chunks] == [2000, 2000, 1000]
        assert "".join(c.content for c in chunks) == text

    def test_short_sections_merge_with_next(self):
        content = "## Context\n\nshort\n\n## Action\n\n" + ("Do the thing carefully. " * 10)
        chunks = RunbookChunker(max_chunk_size=2000, min_chunk_size=100).chunk(content, "a.md")

        assert len(chunks) == 1
        assert chunks[0].section_title == "Context"
        assert "short" in chunks[0].content
        assert "Do the thing carefully." in chunks[0].content

    def test_short_trailing_section_folds_into_previous(self):
        content = "## Main\n\n" + ("Long explanation sentence. " * 10) + "\n\n## Footer\n\nbye"
        chunks = RunbookChunker(max_chunk_size=2000, min_chunk_size=100).chunk(content, "b.md")

        assert len(chunks) == 1
        assert chunks[0].content.endswith("bye")

    def test_code_fence_is_not_split_when_avoidable(self):
        fence = "```\n" + "\n".join(f"echo line {i}" for i in range(8)) + "\n```"
        prose = "Check the service first. " * 6
        content = f"## Fix\n\n{prose}\n\n{fence}\n\n{prose}"
        chunks = RunbookChunker(max_chunk_size=260, min_chunk_size=20).chunk(content, "c.md")

        fenced = [c for c in chunks if "```" in c.content]
        assert fenced
        for chunk in fenced:
            assert chunk.content.count("```") == 2

    @pytest.mark.parametrize("max_size,min_size", [(0, 0), (100, 100), (100, -1)])
    def test_invalid_bounds_rejected(self, max_size, min_size):
        with pytest.raises(ValueError):
            RunbookChunker(max_chunk_size=max_size, min_chunk_size=min_size)
