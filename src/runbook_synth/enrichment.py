"""
Context enrichment

Gathers resource metadata, recent metrics and recent logs for an alert.
The three fetches run concurrently; each one converts its own failure or
timeout into an absent value before the join, so ``enrich`` always returns
an ``EnrichedContext``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from datetime import timedelta
from typing import Optional, TypeVar

from .adapters.base import ComputeMetadataPort, LogsPort, MetricsPort
from .config import EnrichmentConfig
from .models import Alert, EnrichedContext
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_async

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RESOURCE_ID_KEYS = ("resourceId", "instanceId", "InstanceId", "resource_id")


def extract_resource_id(
    alert: Alert, keys: Sequence[str] = DEFAULT_RESOURCE_ID_KEYS
) -> Optional[str]:
    """First non-blank dimension value among ``keys``, in order"""
    for key in keys:
        value = alert.dimensions.get(key)
        if value and value.strip():
            return value.strip()
    return None


class ContextEnrichmentService:
    """Builds an ``EnrichedContext`` from the three context ports"""

    def __init__(
        self,
        metadata: ComputeMetadataPort,
        metrics: MetricsPort,
        logs: LogsPort,
        config: Optional[EnrichmentConfig] = None,
    ):
        self.metadata = metadata
        self.metrics = metrics
        self.logs = logs
        self.config = config or EnrichmentConfig()

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.config.lookback_minutes)

    async def _isolated(self, source: str, fetch: Awaitable[T], absent: T) -> T:
        try:
            result = await asyncio.wait_for(fetch, timeout=self.config.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{source} fetch timed out after {self.config.fetch_timeout}s")
            return self._degraded(source, absent)
        except Exception as e:
            logger.warning(f"{source} fetch failed: {type(e).__name__}: {e}")
            return self._degraded(source, absent)
        return absent if result is None else result

    @staticmethod
    def _degraded(source: str, absent: T) -> T:
        add_event("enrichment_source_failed", {"source": source})
        metrics = get_metrics()
        if metrics:
            metrics.record_enrichment_failure(source)
        return absent

    @trace_async("enrichment.enrich")
    async def enrich(self, alert: Alert) -> EnrichedContext:
        """
        Enrich ``alert`` with live context

        When no resource id can be derived from the alert dimensions, no
        fetch is issued and the context carries the alert only.
        """
        resource_id = extract_resource_id(alert, self.config.resource_id_keys)
        if resource_id is None:
            logger.info(f"Alert {alert.id} has no resource id; skipping enrichment")
            return EnrichedContext(alert=alert)

        set_attribute("enrichment.resource_id", resource_id)
        window = self.window
        resource, metrics, logs = await asyncio.gather(
            self._isolated("metadata", self.metadata.get(resource_id), None),
            self._isolated("metrics", self.metrics.fetch(resource_id, window), []),
            self._isolated(
                "logs", self.logs.fetch(resource_id, window, self.config.log_query), []
            ),
        )

        logger.debug(
            f"Enriched alert {alert.id}: resource={'yes' if resource else 'no'}, "
            f"{len(metrics)} metrics, {len(logs)} logs"
        )
        return EnrichedContext(
            alert=alert,
            resource=resource,
            metrics=sorted(metrics, key=lambda snapshot: snapshot.timestamp),
            logs=list(logs),
        )
