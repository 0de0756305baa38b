"""
JSON-file backed vector index

Same ranking as ``InMemoryVectorIndex``; every mutation rewrites the file
through a temporary file and ``os.replace`` so a crash never leaves a
truncated index behind.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from ..exceptions import StorageError
from ..models import RunbookChunk
from .memory import InMemoryVectorIndex

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class JsonFileVectorIndex(InMemoryVectorIndex):
    """Vector index persisted to a single JSON file"""

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot load vector index {self.path}: {e}") from e

        chunks = [RunbookChunk.model_validate(item) for item in data.get("chunks", [])]
        self._chunks = {chunk.id: chunk for chunk in chunks}
        self._dimension = data.get("dimension")
        logger.info(f"Loaded {len(self._chunks)} chunks from {self.path}")

    async def _persist(self, chunks: dict[str, RunbookChunk], dimension: Optional[int]) -> None:
        payload = {
            "version": FORMAT_VERSION,
            "dimension": dimension,
            "chunks": [chunk.model_dump(mode="json") for chunk in chunks.values()],
        }
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".index-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
