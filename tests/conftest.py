"""
Pytest configuration and shared fixtures for runbook-synth tests

Provides in-memory fakes for every port, sample alerts and runbooks, and
resets process-wide state between tests.
"""

import asyncio
from datetime import timedelta
from typing import Optional

import pytest

from runbook_synth.adapters.embeddings import HashEmbeddings
from runbook_synth.config import RunbookSynthConfig, set_config
from runbook_synth.index.memory import InMemoryVectorIndex
from runbook_synth.models import (
    Alert,
    AlertSeverity,
    LogEntry,
    MetricSnapshot,
    ResourceMetadata,
    utc_now,
)
from runbook_synth.observability.metrics import reset_metrics

EMBEDDING_DIMENSION = 256

SYMPTOMS_TEXT = (
    "Memory utilization on the host stays above ninety percent for several minutes. "
    "Processes are killed by the OOM killer and latency rises sharply while swapping."
)

REMEDIATION_PARAGRAPH = (
    "Restart the leaking service after capturing a heap dump so that memory is released "
    "and the evidence is kept for the owning team. Confirm that resident memory drops "
    "back below the alert threshold within five minutes. If it does not, resize the host "
    "to a shape with more memory during the next maintenance window."
)


def build_high_memory_runbook() -> str:
    """Runbook with a ~200 character Symptoms section and a ~3000 character Remediation section"""
    remediation = "\n\n".join(
        f"Step {i}. {REMEDIATION_PARAGRAPH}" for i in range(1, 11)
    )
    return (
        "---\n"
        "title: High memory utilization\n"
        "tags: [memory, oom]\n"
        "applicable_shapes: [\"VM.*\"]\n"
        "---\n\n"
        f"## Symptoms\n\n{SYMPTOMS_TEXT}\n\n"
        f"## Remediation\n\n{remediation}\n"
    )


class FakeStorage:
    """Dict-backed ``StoragePort``"""

    def __init__(self, documents: Optional[dict[str, str]] = None, fail_paths=()):
        self.documents = dict(documents or {})
        self.fail_paths = set(fail_paths)
        self.list_error: Optional[Exception] = None

    async def list_paths(self, prefix: str = "") -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return sorted(path for path in self.documents if path.startswith(prefix))

    async def read(self, path: str) -> Optional[str]:
        if path in self.fail_paths:
            raise ConnectionError(f"storage unreachable for {path}")
        return self.documents.get(path)


class FlakyEmbeddings(HashEmbeddings):
    """Hash embeddings that fail for texts containing a marker"""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION, fail_marker: str = "FAIL", delay: float = 0.0):
        super().__init__(dimension)
        self.fail_marker = fail_marker
        self.delay = delay
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_marker and self.fail_marker in text:
            raise ConnectionError("embedding service unavailable")
        return self.embed_sync(text)


class FakeMetadataSource:
    def __init__(self, resource: Optional[ResourceMetadata] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.resource = resource
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def get(self, resource_id: str) -> Optional[ResourceMetadata]:
        self.calls.append(resource_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.resource


class FakeMetricsSource:
    def __init__(self, snapshots=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.snapshots = list(snapshots or [])
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, timedelta]] = []

    async def fetch(self, resource_id: str, window: timedelta) -> list[MetricSnapshot]:
        self.calls.append((resource_id, window))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.snapshots)


class FakeLogsSource:
    def __init__(self, entries=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.entries = list(entries or [])
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, timedelta, Optional[str]]] = []

    async def fetch(self, resource_id: str, window: timedelta, query: Optional[str] = None) -> list[LogEntry]:
        self.calls.append((resource_id, window, query))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.entries)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Clear the process configuration and metrics collector around each test"""
    set_config(None)
    reset_metrics()
    yield
    set_config(None)
    reset_metrics()


@pytest.fixture
def test_config(tmp_path):
    """Configuration with offline providers and telemetry off"""
    return RunbookSynthConfig(
        runbooks={"local_dir": str(tmp_path / "runbooks"), "ingest_on_startup": False},
        embedding={"provider": "hash", "dimension": EMBEDDING_DIMENSION},
        llm={"default": "default", "routers": {"default": {"provider": "mock"}}},
        telemetry={"enabled": False},
    )


@pytest.fixture
def embeddings():
    return HashEmbeddings(EMBEDDING_DIMENSION)


@pytest.fixture
def vector_index():
    return InMemoryVectorIndex()


@pytest.fixture
def high_memory_runbook():
    return build_high_memory_runbook()


@pytest.fixture
def sample_alert():
    """Critical memory alert for resource i-123"""
    return Alert(
        id="alert-001",
        title="High memory usage on web-01",
        message="MemoryUtilization above 90% for 10 minutes",
        severity=AlertSeverity.CRITICAL,
        source_service="cloudwatch",
        dimensions={"resourceId": "i-123", "memory": "MemoryUtilization"},
        labels={"team": "platform"},
    )


@pytest.fixture
def sample_resource():
    return ResourceMetadata(
        id="i-123",
        display_name="web-01",
        shape="VM.Standard2.1",
        zone="AD-1",
        tags={"env": "production"},
    )


@pytest.fixture
def sample_metrics():
    now = utc_now()
    return [
        MetricSnapshot(
            metric_name="MemoryUtilization",
            timestamp=now - timedelta(minutes=minutes),
            value=value,
            unit="Percent",
        )
        for minutes, value in ((2, 96.0), (8, 91.0))
    ]


@pytest.fixture
def sample_logs():
    return [
        LogEntry(
            timestamp=utc_now() - timedelta(minutes=1),
            message="Out of memory: Killed process 4242 (java)",
            source="kernel",
            severity="ERROR",
        )
    ]
