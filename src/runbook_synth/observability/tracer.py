"""
OpenTelemetry tracing for pipeline stages

Spans are created through ``trace_operation`` / ``trace_async``; before
``initialize_tracing`` runs they go to a no-op tracer, so stage code never
checks whether tracing is on.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Optional, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

from .config import TelemetryConfig

logger = logging.getLogger(__name__)

_tracer: Optional[trace.Tracer] = None
_provider: Optional[TracerProvider] = None

P = ParamSpec("P")
T = TypeVar("T")

_SIMPLE_TYPES = (str, int, float, bool)


def initialize_tracing(config: TelemetryConfig) -> None:
    """Install a tracer provider and, when an endpoint is configured, an OTLP exporter"""
    global _tracer, _provider

    if not config.enabled or not config.tracing.enabled:
        logger.info("Tracing is disabled")
        return

    resource = Resource.create(config.get_resource_attributes())
    provider = TracerProvider(
        resource=resource, sampler=TraceIdRatioBased(config.tracing.sample_rate)
    )

    if config.should_export_traces():
        exporter = OTLPSpanExporter(
            endpoint=config.tracing.otlp_endpoint,
            headers=config.tracing.otlp_headers,
            insecure=config.tracing.otlp_insecure,
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info(f"OTLP trace exporter configured for {config.tracing.otlp_endpoint}")

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = provider.get_tracer(
        instrumenting_module_name="runbook_synth",
        instrumenting_library_version=config.tracing.service_version,
    )
    logger.info(f"OpenTelemetry tracing initialized (sample_rate={config.tracing.sample_rate})")


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or a no-op tracer before initialization"""
    if _tracer is None:
        return trace.NoOpTracer()
    return _tracer


@contextmanager
def trace_operation(operation_name: str, attributes: Optional[dict[str, Any]] = None):
    """
    Context manager for tracing one operation

    Exceptions are recorded on the span and re-raised.
    """
    with get_tracer().start_as_current_span(operation_name) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def trace_async(
    operation_name: Optional[str] = None,
    attributes: Optional[dict[str, Any]] = None,
    record_args: bool = False,
    record_result: bool = False,
):
    """
    Decorator for tracing coroutine functions

    Args:
        operation_name: Span name (defaults to the function's qualified name)
        attributes: Static attributes added to every span
        record_args: Record simple positional/keyword arguments as attributes
        record_result: Record a simple result, or the length of a sized one
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = operation_name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            span_attributes = dict(attributes or {})
            if record_args:
                for i, arg in enumerate(args):
                    if isinstance(arg, _SIMPLE_TYPES):
                        span_attributes[f"arg.{i}"] = arg
                for key, value in kwargs.items():
                    if isinstance(value, _SIMPLE_TYPES):
                        span_attributes[f"kwarg.{key}"] = value

            with trace_operation(name, span_attributes) as span:
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                finally:
                    span.set_attribute(
                        "operation.duration_ms", (time.perf_counter() - start_time) * 1000
                    )

                if record_result and result is not None:
                    if isinstance(result, _SIMPLE_TYPES):
                        span.set_attribute("result", result)
                    elif hasattr(result, "__len__"):
                        span.set_attribute("result.length", len(result))
                return result

        return wrapper

    return decorator


def add_event(name: str, attributes: Optional[dict[str, Any]] = None) -> None:
    """Add an event to the current span"""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes or {})


def set_attribute(key: str, value: Any) -> None:
    """Set an attribute on the current span"""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, value)


def get_trace_id() -> str:
    """Current trace id as hex, empty when no span is recording"""
    span = trace.get_current_span()
    if span.is_recording():
        return format(span.get_span_context().trace_id, "032x")
    return ""


def get_span_id() -> str:
    """Current span id as hex, empty when no span is recording"""
    span = trace.get_current_span()
    if span.is_recording():
        return format(span.get_span_context().span_id, "016x")
    return ""


def shutdown_tracing() -> None:
    """Flush pending spans and drop the tracer"""
    global _tracer, _provider
    if _provider is not None:
        _provider.shutdown()
    _tracer = None
    _provider = None
