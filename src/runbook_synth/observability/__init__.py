"""
Observability for runbook-synth

OpenTelemetry tracing, Prometheus metrics and structured logging setup.
"""

from .config import LoggingConfig, MetricsConfig, TelemetryConfig, TracingConfig
from .init import (
    configure_logging,
    initialize_observability,
    is_observability_initialized,
    shutdown_observability,
)
from .metrics import MetricsCollector, get_metrics
from .tracer import add_event, get_tracer, set_attribute, trace_async, trace_operation

__all__ = [
    "TelemetryConfig",
    "TracingConfig",
    "MetricsConfig",
    "LoggingConfig",
    "get_tracer",
    "trace_operation",
    "trace_async",
    "add_event",
    "set_attribute",
    "get_metrics",
    "MetricsCollector",
    "configure_logging",
    "initialize_observability",
    "shutdown_observability",
    "is_observability_initialized",
]
