"""
Port contracts for the external collaborators of the pipeline

Every port is a runtime-checkable ``Protocol``; adapters satisfy them
structurally and tests can pass any object with the right coroutines.
"""

from collections.abc import Sequence
from datetime import timedelta
from typing import Optional, Protocol, runtime_checkable

from ..models import LogEntry, MetricSnapshot, ResourceMetadata


@runtime_checkable
class StoragePort(Protocol):
    """Runbook document storage"""

    async def list_paths(self, prefix: str = "") -> list[str]:
        """Document paths under ``prefix``"""
        ...

    async def read(self, path: str) -> Optional[str]:
        """Document content, or None when the path does not exist"""
        ...


@runtime_checkable
class ComputeMetadataPort(Protocol):
    async def get(self, resource_id: str) -> Optional[ResourceMetadata]:
        ...


@runtime_checkable
class MetricsPort(Protocol):
    async def fetch(self, resource_id: str, window: timedelta) -> list[MetricSnapshot]:
        """Samples inside the lookback window, oldest first; empty when there is no data"""
        ...


@runtime_checkable
class LogsPort(Protocol):
    async def fetch(
        self, resource_id: str, window: timedelta, query: Optional[str] = None
    ) -> list[LogEntry]:
        ...


@runtime_checkable
class EmbeddingPort(Protocol):
    """Text to fixed-dimension vector"""

    @property
    def dimension(self) -> int:
        ...

    async def embed(self, text: str) -> list[float]:
        ...

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        ...
