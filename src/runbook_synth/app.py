"""
Application assembly

``build_application`` wires every component from one configuration object.
The result owns the shared vector index and dispatcher for the process
lifetime.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .adapters import AdapterBundle, create_adapters
from .config import RunbookSynthConfig
from .enrichment import ContextEnrichmentService
from .generator import ChecklistGenerator, PromptManager
from .index import create_vector_index
from .index.base import VectorIndex
from .ingestion import IngestionService, run_startup_ingestion
from .llm_client import LLMRouter
from .models import Alert, DynamicChecklist, IngestionResult
from .observability import initialize_observability, shutdown_observability
from .output import WebhookDispatcher, create_destinations
from .pipeline import RagPipeline
from .retriever import RunbookRetriever

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Fully wired runbook-synth components"""

    config: RunbookSynthConfig
    adapters: AdapterBundle
    index: VectorIndex
    ingestion: IngestionService
    pipeline: RagPipeline
    dispatcher: WebhookDispatcher

    async def startup(self) -> Optional[IngestionResult]:
        """Initialize observability, then run startup ingestion when enabled"""
        telemetry = self.config.telemetry
        if not (telemetry.enabled and telemetry.logging.enabled):
            logging.basicConfig(level=self.config.log_level.upper())
        initialize_observability(telemetry)
        return await run_startup_ingestion(self.ingestion, self.config)

    async def shutdown(self) -> None:
        if self.dispatcher.pending:
            logger.info(f"Waiting for {self.dispatcher.pending} outstanding dispatches")
        await self.dispatcher.wait_idle()
        shutdown_observability()

    async def process_alert(self, alert: Alert) -> DynamicChecklist:
        return await self.pipeline.process_alert(alert)

    async def ingest(self, path: Optional[str] = None) -> IngestionResult:
        """Ingest one document, or every document under the configured prefix"""
        if path:
            return await self.ingestion.ingest_one(path)
        return await self.ingestion.ingest_all()


def build_application(
    config: RunbookSynthConfig, adapters: Optional[AdapterBundle] = None
) -> Application:
    """
    Build the application described by ``config``

    Args:
        config: Process configuration
        adapters: Port implementations to use instead of the configured ones

    Raises:
        ValueError: Unknown adapter, index or LLM provider
        WebhookConfigError: Invalid webhook destination
    """
    adapters = adapters or create_adapters(config)
    index = create_vector_index(config.vector_store)
    ingestion = IngestionService.from_config(config, adapters.storage, adapters.embeddings, index)

    generation = config.generation
    generator = ChecklistGenerator(
        router=LLMRouter(config.llm),
        prompt_manager=PromptManager(generation.prompts_dir),
        template_key=generation.prompt_template,
    )
    dispatcher = WebhookDispatcher(create_destinations(config.webhooks))

    pipeline = RagPipeline(
        enrichment=ContextEnrichmentService(
            adapters.metadata, adapters.metrics, adapters.logs, config.enrichment
        ),
        retriever=RunbookRetriever(adapters.embeddings, index, config.embedding.timeout),
        generator=generator,
        dispatcher=dispatcher,
        generation_config=generation.params,
        generation_timeout=generation.timeout,
    )

    logger.debug(
        f"Application built: index={config.vector_store.provider}, "
        f"embeddings={config.embedding.provider}, {len(dispatcher.destinations)} destinations"
    )
    return Application(
        config=config,
        adapters=adapters,
        index=index,
        ingestion=ingestion,
        pipeline=pipeline,
        dispatcher=dispatcher,
    )
