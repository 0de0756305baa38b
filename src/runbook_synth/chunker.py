"""
Markdown runbook chunker

Splits a runbook into section-sized chunks:

1. A leading ``---`` YAML frontmatter block is parsed once and attached to
   every chunk of the document.
2. The body is split at ``##`` / ``###`` headers; text before the first
   header becomes an "Introduction" section.
3. Sections shorter than ``min_chunk_size`` are merged with the following
   section; a short trailing remainder is folded into the previous chunk
   when it fits.
4. Anything longer than ``max_chunk_size`` is cut at the last paragraph
   break, then sentence end, then line break, then whitespace below the
   size limit, avoiding fenced code blocks. A hard character cut is used only
   when the text has no usable boundary at all.

Chunk ids are derived from ``(source_path, chunk_index)`` so re-chunking the
same document always yields the same ids.
"""

import logging
import re
from typing import Any, Optional

import yaml

from .models import RunbookChunk, RunbookFrontmatter, make_chunk_id

logger = logging.getLogger(__name__)

DEFAULT_MIN_CHUNK_SIZE = 100
DEFAULT_MAX_CHUNK_SIZE = 2000
INTRODUCTION_TITLE = "Introduction"

FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
HEADER_PATTERN = re.compile(r"^(#{2,3})[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
FENCE_PATTERN = re.compile(r"^[ \t]*(```|~~~)", re.MULTILINE)

# Boundary patterns, most preferred first. A cut is placed at match.start().
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_LINE_BREAK = re.compile(r"\n")
_WHITESPACE = re.compile(r"\s+")


def parse_frontmatter(content: str) -> tuple[RunbookFrontmatter, str]:
    """
    Split a document into its frontmatter and body

    Returns an empty ``RunbookFrontmatter`` and the untouched content when
    the document has no frontmatter block or the block is not valid YAML.
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return RunbookFrontmatter(), content

    body = content[match.end():]
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring malformed frontmatter: {e}")
        return RunbookFrontmatter(), body

    if not isinstance(data, dict):
        logger.warning("Ignoring frontmatter that is not a mapping")
        return RunbookFrontmatter(), body

    title = data.pop("title", None)
    tags = _as_string_tuple(data.pop("tags", None))
    shapes = _as_string_tuple(data.pop("applicable_shapes", None))
    frontmatter = RunbookFrontmatter(
        title=str(title).strip() if title is not None else None,
        tags=tags,
        applicable_shapes=shapes,
        extra={str(key): value for key, value in data.items()},
    )
    return frontmatter, body


def _as_string_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [str(item) for item in value if item is not None]
    else:
        items = [str(value)]
    return tuple(item.strip() for item in items if item.strip())


def split_sections(body: str) -> list[tuple[str, str]]:
    """Split a markdown body into ``(title, content)`` pairs at level 2/3 headers"""
    sections: list[tuple[str, str]] = []
    title = INTRODUCTION_TITLE
    last_end = 0

    for match in HEADER_PATTERN.finditer(body):
        if not _inside_fence(body, match.start()):
            text = body[last_end:match.start()].strip()
            if text:
                sections.append((title, text))
            title = match.group(2).strip()
            last_end = match.end()

    text = body[last_end:].strip()
    if text:
        sections.append((title, text))
    return sections


def _fence_spans(text: str) -> list[tuple[int, int]]:
    """Character spans of fenced code blocks; an unclosed fence runs to the end"""
    spans = []
    opening: Optional[int] = None
    for match in FENCE_PATTERN.finditer(text):
        if opening is None:
            opening = match.start()
        else:
            line_end = text.find("\n", match.end())
            spans.append((opening, len(text) if line_end == -1 else line_end))
            opening = None
    if opening is not None:
        spans.append((opening, len(text)))
    return spans


def _inside_fence(text: str, position: int) -> bool:
    return any(start < position < end for start, end in _fence_spans(text))


class RunbookChunker:
    """Deterministic markdown chunker"""

    def __init__(
        self,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE,
    ):
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if not 0 <= min_chunk_size < max_chunk_size:
            raise ValueError("min_chunk_size must be between 0 and max_chunk_size")
        self.max_chunk_size = max_chunk_size
        self.min_chunk_size = min_chunk_size

    def chunk(self, content: str, source_path: str) -> list[RunbookChunk]:
        """Chunk one document; blank documents yield an empty list"""
        if not content or not content.strip():
            return []

        frontmatter, body = parse_frontmatter(content)
        pieces = self._merge_sections(split_sections(body))

        chunks = [
            RunbookChunk(
                id=make_chunk_id(source_path, index),
                content=text,
                source_path=source_path,
                section_title=title,
                chunk_index=index,
                metadata=frontmatter,
            )
            for index, (title, text) in enumerate(pieces)
        ]
        logger.debug(f"Chunked {source_path} into {len(chunks)} chunks")
        return chunks

    def _merge_sections(self, sections: list[tuple[str, str]]) -> list[tuple[str, str]]:
        pieces: list[tuple[str, str]] = []
        pending_title: Optional[str] = None
        pending = ""

        for title, text in sections:
            if pending and len(pending) + 2 + len(text) > self.max_chunk_size:
                pieces.extend(self._split_oversized(pending_title, pending))
                pending_title, pending = None, ""

            if pending_title is None:
                pending_title = title
            pending = f"{pending}\n\n{text}" if pending else text

            if len(pending) >= self.min_chunk_size:
                pieces.extend(self._split_oversized(pending_title, pending))
                pending_title, pending = None, ""

        if pending:
            if pieces and len(pieces[-1][1]) + 2 + len(pending) <= self.max_chunk_size:
                last_title, last_text = pieces.pop()
                pieces.append((last_title, f"{last_text}\n\n{pending}"))
            else:
                pieces.extend(self._split_oversized(pending_title, pending))

        return pieces

    def _split_oversized(self, title: str, text: str) -> list[tuple[str, str]]:
        """Cut ``text`` into parts no longer than ``max_chunk_size``, all titled ``title``"""
        parts = []
        remaining = text.strip()
        while len(remaining) > self.max_chunk_size:
            cut = self._find_cut(remaining)
            head = remaining[:cut].rstrip()
            if head:
                parts.append((title, head))
            remaining = remaining[cut:].lstrip()
        if remaining:
            parts.append((title, remaining))
        return parts

    def _find_cut(self, text: str) -> int:
        limit = self.max_chunk_size
        floor = min(self.min_chunk_size, limit // 2)
        window = text[: limit + 1]
        fences = _fence_spans(text)

        def outside_fence(position: int) -> bool:
            return not any(start < position < end for start, end in fences)

        for pattern in (_PARAGRAPH_BREAK, _SENTENCE_END, _LINE_BREAK, _WHITESPACE):
            cut = self._last_boundary(window, pattern, floor, outside_fence)
            if cut is not None:
                return cut

        # A single fenced block larger than the size limit; cut inside it.
        for pattern in (_LINE_BREAK, _WHITESPACE):
            cut = self._last_boundary(window, pattern, floor, lambda position: True)
            if cut is not None:
                return cut

        logger.debug("No boundary found below the size limit; using a hard cut")
        return limit

    @staticmethod
    def _last_boundary(window: str, pattern: re.Pattern, floor: int, accept) -> Optional[int]:
        best = None
        for match in pattern.finditer(window):
            position = match.start()
            if position > floor and accept(position):
                best = position
        return best
