"""
Filesystem storage for runbook documents
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..exceptions import StorageError

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """
    Serves runbooks from a local directory

    Paths are POSIX-style and relative to ``root``; anything resolving
    outside the root is rejected.
    """

    def __init__(self, root: str, extensions: Optional[list[str]] = None):
        self.root = Path(root).resolve()
        self.extensions = tuple(ext.lower() for ext in (extensions or [".md"]))

    def _resolve(self, path: str) -> Path:
        candidate = (self.root / path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise StorageError(f"Path escapes storage root: {path}", {"root": str(self.root)})
        return candidate

    async def list_paths(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    def _list_sync(self, prefix: str) -> list[str]:
        if not self.root.is_dir():
            raise StorageError(f"Runbook directory does not exist: {self.root}")

        paths = []
        for file_path in self.root.rglob("*"):
            if not file_path.is_file() or file_path.suffix.lower() not in self.extensions:
                continue
            relative = file_path.relative_to(self.root).as_posix()
            if relative.startswith(prefix):
                paths.append(relative)
        return sorted(paths)

    async def read(self, path: str) -> Optional[str]:
        file_path = self._resolve(path)
        try:
            return await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"Runbook not found: {path}")
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e
