"""
Fixture-backed context sources

Serve resource metadata, metrics and logs from a YAML document keyed by
resource id. Used for local runs and as an in-memory fake in tests.

Example fixtures file::

    resources:
      i-123:
        display_name: web-1
        shape: VM.Standard2.1
        zone: AD-1
        metrics:
          - metric_name: MemoryUtilization
            value: 92.5
            unit: Percent
            age_minutes: 3
        logs:
          - message: "Out of memory: Killed process 4242 (java)"
            severity: ERROR
            source: syslog
            age_minutes: 2

Samples may give an absolute ``timestamp`` instead of ``age_minutes``.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from ..models import LogEntry, MetricSnapshot, ResourceMetadata, utc_now

logger = logging.getLogger(__name__)


class FixtureResource(BaseModel):
    display_name: Optional[str] = None
    shape: Optional[str] = None
    zone: Optional[str] = None
    compartment_id: Optional[str] = None
    tags: dict[str, str] = Field(default_factory=dict)
    metrics: list[dict[str, Any]] = Field(default_factory=list)
    logs: list[dict[str, Any]] = Field(default_factory=list)


class ContextFixtures(BaseModel):
    """Parsed fixtures document"""

    resources: dict[str, FixtureResource] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[str]) -> "ContextFixtures":
        """Load fixtures from YAML; a missing path yields empty fixtures"""
        if not path:
            return cls()
        fixtures_file = Path(path)
        if not fixtures_file.exists():
            logger.warning(f"Context fixtures file not found: {path}")
            return cls()
        with open(fixtures_file, encoding="utf-8") as f:
            return cls.model_validate(yaml.safe_load(f) or {})


def _sample_time(sample: dict[str, Any], now: datetime) -> datetime:
    if "timestamp" in sample:
        value = sample["timestamp"]
        if not isinstance(value, datetime):
            value = datetime.fromisoformat(str(value))
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return now - timedelta(minutes=float(sample.get("age_minutes", 0)))


class StaticMetadataSource:
    def __init__(self, fixtures: ContextFixtures):
        self.fixtures = fixtures

    async def get(self, resource_id: str) -> Optional[ResourceMetadata]:
        resource = self.fixtures.resources.get(resource_id)
        if resource is None:
            return None
        return ResourceMetadata(
            id=resource_id,
            display_name=resource.display_name,
            shape=resource.shape,
            zone=resource.zone,
            compartment_id=resource.compartment_id,
            tags=resource.tags,
        )


class StaticMetricsSource:
    def __init__(self, fixtures: ContextFixtures):
        self.fixtures = fixtures

    async def fetch(self, resource_id: str, window: timedelta) -> list[MetricSnapshot]:
        resource = self.fixtures.resources.get(resource_id)
        if resource is None:
            return []

        now = utc_now()
        snapshots = []
        for sample in resource.metrics:
            timestamp = _sample_time(sample, now)
            if timestamp < now - window:
                continue
            snapshots.append(
                MetricSnapshot(
                    metric_name=sample["metric_name"],
                    timestamp=timestamp,
                    value=float(sample["value"]),
                    unit=sample.get("unit", ""),
                    namespace=sample.get("namespace"),
                )
            )
        return sorted(snapshots, key=lambda snapshot: snapshot.timestamp)


class StaticLogsSource:
    def __init__(self, fixtures: ContextFixtures):
        self.fixtures = fixtures

    async def fetch(
        self, resource_id: str, window: timedelta, query: Optional[str] = None
    ) -> list[LogEntry]:
        resource = self.fixtures.resources.get(resource_id)
        if resource is None:
            return []

        now = utc_now()
        entries = []
        for sample in resource.logs:
            timestamp = _sample_time(sample, now)
            message = str(sample.get("message", ""))
            if timestamp < now - window:
                continue
            if query and query.lower() not in message.lower():
                continue
            entries.append(
                LogEntry(
                    timestamp=timestamp,
                    message=message,
                    source=sample.get("source", ""),
                    severity=str(sample.get("severity", "INFO")).upper(),
                )
            )
        return sorted(entries, key=lambda entry: entry.timestamp)
