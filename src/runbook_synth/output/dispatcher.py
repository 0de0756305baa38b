"""
Checklist dispatch

Delivers a checklist to every matching destination concurrently, with a
bounded exponential-backoff retry per destination. Background dispatch
runs as a detached task whose failures only reach the log.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Optional

from ..models import DynamicChecklist
from ..observability.metrics import get_metrics
from ..observability.tracer import set_attribute, trace_async
from .base import WebhookDestination, WebhookResult

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Fan-out of checklists to configured destinations"""

    def __init__(self, destinations: Sequence[WebhookDestination] = ()):
        self.destinations = list(destinations)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _deliver(
        self, destination: WebhookDestination, checklist: DynamicChecklist
    ) -> WebhookResult:
        max_attempts = destination.config.retry_count + 1
        for attempt in range(max_attempts):
            try:
                result = await destination.send(checklist)
            except Exception as e:
                result = WebhookResult.failed(destination.name, f"{type(e).__name__}: {e}")

            if result.success or not result.retryable or attempt + 1 == max_attempts:
                break

            delay = destination.config.retry_delay * 2**attempt
            logger.warning(
                f"Delivery to {destination.name} failed ({result.error}); "
                f"retrying in {delay:.1f}s ({attempt + 1}/{max_attempts - 1})"
            )
            await asyncio.sleep(delay)

        result = result.model_copy(update={"attempts": attempt + 1})
        if result.success:
            logger.info(f"Checklist {checklist.alert_id} delivered to {destination.name}")
        else:
            logger.error(
                f"Checklist {checklist.alert_id} not delivered to {destination.name} "
                f"after {result.attempts} attempt(s): {result.error}"
            )

        metrics = get_metrics()
        if metrics:
            metrics.record_webhook_delivery(destination.name, result.success)
        return result

    @trace_async("dispatch.dispatch")
    async def dispatch(
        self,
        checklist: DynamicChecklist,
        destinations: Optional[Sequence[WebhookDestination]] = None,
    ) -> list[WebhookResult]:
        """
        Deliver to every destination whose filter matches

        Never raises for a destination failure; each one is reported in the
        returned results.
        """
        candidates = self.destinations if destinations is None else destinations
        targets = [destination for destination in candidates if destination.should_send(checklist)]
        set_attribute("dispatch.destinations", len(targets))
        if not targets:
            logger.debug(f"No destinations match checklist {checklist.alert_id}")
            return []

        return list(
            await asyncio.gather(*(self._deliver(destination, checklist) for destination in targets))
        )

    async def _dispatch_logged(self, checklist: DynamicChecklist) -> None:
        try:
            await self.dispatch(checklist)
        except Exception:
            logger.exception(f"Background dispatch failed for checklist {checklist.alert_id}")

    def dispatch_in_background(self, checklist: DynamicChecklist) -> asyncio.Task:
        """Start ``dispatch`` as a detached task and return it"""
        task = asyncio.create_task(self._dispatch_logged(checklist))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every background dispatch started so far"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
