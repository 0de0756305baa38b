"""
Prometheus metrics collection for runbook-synth

Covers alert processing outcomes, per-stage latency, degraded enrichment
sources, ingestion throughput, LLM usage and webhook delivery.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """
    Central metrics collector

    Each collector owns its registry, so several collectors (e.g. one per
    test) never clash on metric names.
    """

    config: TelemetryConfig
    registry: CollectorRegistry = field(default_factory=CollectorRegistry)

    alerts_processed_total: Counter = field(init=False)
    stage_duration: Histogram = field(init=False)
    enrichment_failures_total: Counter = field(init=False)
    retrieval_results: Histogram = field(init=False)

    documents_ingested_total: Counter = field(init=False)
    documents_failed_total: Counter = field(init=False)
    chunks_ingested_total: Counter = field(init=False)
    chunks_failed_total: Counter = field(init=False)

    llm_requests_total: Counter = field(init=False)
    llm_duration: Histogram = field(init=False)
    llm_tokens_total: Counter = field(init=False)
    llm_errors_total: Counter = field(init=False)

    webhook_deliveries_total: Counter = field(init=False)

    active_operations: Gauge = field(init=False)
    system_info: Info = field(init=False)

    def __post_init__(self):
        self._initialize_metrics()
        if self.config.should_start_metrics_server():
            self._start_metrics_server()

    def _initialize_metrics(self):
        labels = list(self.config.metrics.default_labels.keys())
        buckets = self.config.metrics.duration_buckets
        ns = self.config.metrics.namespace

        self.alerts_processed_total = Counter(
            f"{ns}_alerts_processed_total",
            "Alerts run through the pipeline",
            labelnames=["status"] + labels,
            registry=self.registry,
        )
        self.stage_duration = Histogram(
            f"{ns}_stage_duration_seconds",
            "Duration of pipeline stages",
            labelnames=["stage"] + labels,
            buckets=buckets,
            registry=self.registry,
        )
        self.enrichment_failures_total = Counter(
            f"{ns}_enrichment_failures_total",
            "Context sources that failed or timed out during enrichment",
            labelnames=["source"] + labels,
            registry=self.registry,
        )
        self.retrieval_results = Histogram(
            f"{ns}_retrieval_results",
            "Number of runbook chunks returned per retrieval",
            labelnames=labels,
            buckets=[0, 1, 2, 3, 5, 10, 20],
            registry=self.registry,
        )

        self.documents_ingested_total = Counter(
            f"{ns}_documents_ingested_total",
            "Runbook documents ingested",
            labelnames=labels,
            registry=self.registry,
        )
        self.documents_failed_total = Counter(
            f"{ns}_documents_failed_total",
            "Runbook documents that failed ingestion",
            labelnames=labels,
            registry=self.registry,
        )
        self.chunks_ingested_total = Counter(
            f"{ns}_chunks_ingested_total",
            "Runbook chunks embedded and stored",
            labelnames=labels,
            registry=self.registry,
        )
        self.chunks_failed_total = Counter(
            f"{ns}_chunks_failed_total",
            "Runbook chunks skipped because embedding failed",
            labelnames=labels,
            registry=self.registry,
        )

        self.llm_requests_total = Counter(
            f"{ns}_llm_requests_total",
            "LLM requests",
            labelnames=["provider", "model", "router"] + labels,
            registry=self.registry,
        )
        self.llm_duration = Histogram(
            f"{ns}_llm_duration_seconds",
            "Duration of LLM requests",
            labelnames=["provider", "model", "router"] + labels,
            buckets=buckets,
            registry=self.registry,
        )
        self.llm_tokens_total = Counter(
            f"{ns}_llm_tokens_total",
            "LLM tokens used",
            labelnames=["provider", "model", "router", "token_type"] + labels,
            registry=self.registry,
        )
        self.llm_errors_total = Counter(
            f"{ns}_llm_errors_total",
            "LLM request failures",
            labelnames=["provider", "model", "router", "error_type"] + labels,
            registry=self.registry,
        )

        self.webhook_deliveries_total = Counter(
            f"{ns}_webhook_deliveries_total",
            "Checklist deliveries per destination",
            labelnames=["destination", "outcome"] + labels,
            registry=self.registry,
        )

        self.active_operations = Gauge(
            f"{ns}_active_operations",
            "Operations currently in flight",
            labelnames=["operation_type"] + labels,
            registry=self.registry,
        )
        self.system_info = Info(f"{ns}_system", "System information", registry=self.registry)
        self.system_info.info(
            {
                "version": self.config.tracing.service_version,
                "environment": self.config.environment,
            }
        )

    def _start_metrics_server(self):
        try:
            start_http_server(port=self.config.metrics.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.config.metrics.port}")
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")

    def _labels(self, **labels: str) -> dict[str, str]:
        return {**self.config.metrics.default_labels, **labels}

    def _child(self, metric, **labels: str):
        labels = self._labels(**labels)
        return metric.labels(**labels) if labels else metric

    @contextmanager
    def time_stage(self, stage: str):
        """Observe the duration of one pipeline stage"""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.stage_duration.labels(**self._labels(stage=stage)).observe(
                time.perf_counter() - start_time
            )

    @contextmanager
    def track_active_operation(self, operation_type: str):
        labels = self._labels(operation_type=operation_type)
        self.active_operations.labels(**labels).inc()
        try:
            yield
        finally:
            self.active_operations.labels(**labels).dec()

    def record_alert(self, status: str):
        self.alerts_processed_total.labels(**self._labels(status=status)).inc()

    def record_enrichment_failure(self, source: str):
        self.enrichment_failures_total.labels(**self._labels(source=source)).inc()

    def record_retrieval(self, count: int):
        self._child(self.retrieval_results).observe(count)

    def record_ingestion(
        self,
        documents_processed: int = 0,
        documents_failed: int = 0,
        chunks_stored: int = 0,
        chunks_failed: int = 0,
    ):
        """Record the counts of one ingestion result"""
        self._child(self.documents_ingested_total).inc(documents_processed)
        self._child(self.documents_failed_total).inc(documents_failed)
        self._child(self.chunks_ingested_total).inc(chunks_stored)
        self._child(self.chunks_failed_total).inc(chunks_failed)

    def record_llm_request(self, provider: str, model: str, router: str, duration: float):
        labels = self._labels(provider=provider, model=model, router=router)
        self.llm_requests_total.labels(**labels).inc()
        self.llm_duration.labels(**labels).observe(duration)

    def record_llm_tokens(
        self,
        provider: str,
        model: str,
        router: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ):
        """Record LLM token usage"""
        base = self._labels(provider=provider, model=model, router=router)
        if prompt_tokens > 0:
            self.llm_tokens_total.labels(**base, token_type="prompt").inc(prompt_tokens)
        if completion_tokens > 0:
            self.llm_tokens_total.labels(**base, token_type="completion").inc(completion_tokens)

    def record_llm_error(self, provider: str, model: str, router: str, error_type: str):
        labels = self._labels(provider=provider, model=model, router=router, error_type=error_type)
        self.llm_errors_total.labels(**labels).inc()

    def record_webhook_delivery(self, destination: str, success: bool):
        outcome = "success" if success else "failure"
        self.webhook_deliveries_total.labels(
            **self._labels(destination=destination, outcome=outcome)
        ).inc()

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")


_metrics: Optional[MetricsCollector] = None


def initialize_metrics(config: TelemetryConfig) -> None:
    """Create the global collector when metrics are enabled"""
    global _metrics
    if not config.enabled or not config.metrics.enabled:
        logger.info("Metrics collection is disabled")
        return
    _metrics = MetricsCollector(config)


def get_metrics() -> Optional[MetricsCollector]:
    """The global collector, or None when metrics are not initialized"""
    return _metrics


def reset_metrics() -> None:
    global _metrics
    _metrics = None
