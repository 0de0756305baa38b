"""
RAG pipeline - alert in, checklist out

Sequences enrichment, retrieval and generation for one alert, assembles the
``DynamicChecklist`` and hands it to the dispatcher without waiting for
delivery. Enrichment and retrieval degrade; only generation can fail the
request.
"""

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Optional

from .enrichment import ContextEnrichmentService
from .exceptions import GenerationError
from .generator import GenerationPort
from .models import Alert, DynamicChecklist, GenerationConfig, PipelineState, RetrievedChunk
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_operation
from .output.dispatcher import WebhookDispatcher
from .retriever import RunbookRetriever

logger = logging.getLogger(__name__)


@dataclass
class PipelineRun:
    """State history of one ``process_alert`` call"""

    alert_id: str
    state: PipelineState = PipelineState.RECEIVED
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        set_attribute("pipeline.state", state.value)
        logger.debug(f"Alert {self.alert_id}: {state.value}")


def source_runbooks(chunks: list[RetrievedChunk]) -> list[str]:
    """Distinct source paths in rank order"""
    return list(dict.fromkeys(item.chunk.source_path for item in chunks))


class RagPipeline:
    """Orchestrates one alert through enrichment, retrieval, generation and dispatch"""

    def __init__(
        self,
        enrichment: ContextEnrichmentService,
        retriever: RunbookRetriever,
        generator: GenerationPort,
        dispatcher: Optional[WebhookDispatcher] = None,
        generation_config: Optional[GenerationConfig] = None,
        generation_timeout: float = 60.0,
    ):
        self.enrichment = enrichment
        self.retriever = retriever
        self.generator = generator
        self.dispatcher = dispatcher
        self.generation_config = generation_config or GenerationConfig()
        self.generation_timeout = generation_timeout

    async def process_alert(
        self, alert: Alert, run: Optional[PipelineRun] = None
    ) -> DynamicChecklist:
        """
        Produce a troubleshooting checklist for ``alert``

        Dispatch is started in the background once the checklist exists and
        is never started when generation fails.

        Args:
            alert: Normalized alert
            run: Optional state record, updated as the request advances

        Raises:
            GenerationError: If the generation port fails, times out, or
                returns no steps
        """
        run = run or PipelineRun(alert_id=alert.id)
        metrics = get_metrics()

        active = metrics.track_active_operation("process_alert") if metrics else nullcontext()

        with active, trace_operation(
            "pipeline.process_alert",
            {"alert.id": alert.id, "alert.severity": alert.severity.value},
        ):
            try:
                checklist = await self._run_stages(alert, run)
            except GenerationError as e:
                failed_at = run.state
                run.advance(PipelineState.FAILED)
                e.context.setdefault("failed_after", failed_at.value)
                logger.error(f"Checklist generation failed for alert {alert.id}: {e}")
                add_event("pipeline_failed", {"stage": failed_at.value})
                if metrics:
                    metrics.record_alert("failed")
                raise

            if self.dispatcher is not None:
                self.dispatcher.dispatch_in_background(checklist)
            run.advance(PipelineState.DISPATCHED)
            if metrics:
                metrics.record_alert("success")

            logger.info(
                f"Checklist for alert {alert.id}: {len(checklist.steps)} steps from "
                f"{len(checklist.source_runbooks)} runbooks"
            )
            return checklist

    async def _run_stages(self, alert: Alert, run: PipelineRun) -> DynamicChecklist:
        metrics = get_metrics()

        with self._timed("enrichment", metrics):
            context = await self.enrichment.enrich(alert)
        run.advance(PipelineState.ENRICHED)

        with self._timed("retrieval", metrics):
            chunks = await self.retriever.retrieve(alert, context, self.generation_config.top_k)
        run.advance(PipelineState.RETRIEVED)
        if not chunks:
            logger.warning(f"No runbook chunks retrieved for alert {alert.id}; generating without them")

        with self._timed("generation", metrics):
            try:
                result = await asyncio.wait_for(
                    self.generator.generate(alert, context, chunks, self.generation_config),
                    timeout=self.generation_timeout,
                )
            except asyncio.TimeoutError as e:
                raise GenerationError(
                    f"Generation timed out after {self.generation_timeout}s",
                    alert_id=alert.id,
                    cause=e,
                ) from e
            except GenerationError:
                raise
            except Exception as e:
                raise GenerationError(
                    f"Generation failed: {e}", alert_id=alert.id, cause=e
                ) from e

        if not result.steps:
            raise GenerationError("Generation returned no checklist steps", alert_id=alert.id)
        run.advance(PipelineState.GENERATED)

        return DynamicChecklist(
            alert_id=alert.id,
            summary=result.summary,
            steps=result.steps,
            severity=alert.severity,
            labels=dict(alert.labels),
            source_runbooks=source_runbooks(chunks),
            llm_provider=result.provider,
        )

    @staticmethod
    def _timed(stage: str, metrics):
        if metrics:
            return metrics.time_stage(stage)
        return nullcontext()
