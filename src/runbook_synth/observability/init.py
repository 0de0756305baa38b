"""
Observability initialization

One entry point that turns on tracing, metrics and logging from a
``TelemetryConfig``.
"""

import logging
import logging.config

from .config import TelemetryConfig
from .metrics import initialize_metrics, reset_metrics
from .tracer import get_span_id, get_trace_id, initialize_tracing, shutdown_tracing

logger = logging.getLogger(__name__)

_initialized = False


class TraceContextFilter(logging.Filter):
    """Adds ``trace_id`` and ``span_id`` of the current span to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        record.span_id = get_span_id()
        return True


def initialize_observability(config: TelemetryConfig) -> None:
    """
    Initialize all observability features

    Safe to call more than once; later calls are ignored until
    ``shutdown_observability`` runs.
    """
    global _initialized

    if _initialized:
        logger.debug("Observability already initialized, skipping")
        return

    if not config.enabled:
        logger.info("Observability is disabled")
        return

    if config.logging.enabled:
        configure_logging(config)

    logger.info(f"Initializing observability for environment: {config.environment}")

    if config.tracing.enabled:
        initialize_tracing(config)
    if config.metrics.enabled:
        initialize_metrics(config)

    _initialized = True


def configure_logging(config: TelemetryConfig) -> None:
    """Configure root logging via dictConfig with a JSON or text formatter"""
    handler: dict = {
        "class": "logging.StreamHandler",
        "level": config.logging.level,
        "formatter": "json" if config.logging.format == "json" else "text",
        "stream": "ext://sys.stderr",
    }
    if config.logging.include_trace_id:
        handler["filters"] = ["trace_context"]

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"trace_context": {"()": TraceContextFilter}},
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.json.JsonFormatter",
                    "fmt": "%(asctime)s %(name)s %(levelname)s %(message)s",
                },
                "text": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            },
            "handlers": {"console": handler},
            "root": {"level": config.logging.level, "handlers": ["console"]},
            "loggers": {
                "runbook_synth": {"level": config.logging.level, "propagate": True},
                **{name: {"level": "WARNING"} for name in config.logging.quiet_loggers},
            },
        }
    )


def is_observability_initialized() -> bool:
    return _initialized


def shutdown_observability() -> None:
    """Flush and shut down the tracer provider, drop the metrics collector"""
    global _initialized

    if not _initialized:
        return

    logger.info("Shutting down observability systems")
    shutdown_tracing()
    reset_metrics()
    _initialized = False
