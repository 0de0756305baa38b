"""
Telemetry settings

Tracing, metrics and logging sections for the alert pipeline. The CLI
embeds these under ``telemetry:`` in the YAML config; a deployment without
a config file can build the same structure from the standard OTEL_* /
PROMETHEUS_* / LOG_* environment variables via ``TelemetryConfig.from_env``.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

SERVICE_NAME = "runbook-synth"
SERVICE_VERSION = "0.1.0"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_header_list(raw: str) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` into a dict, skipping malformed items"""
    headers = {}
    for item in raw.split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


class TracingConfig(BaseModel):
    """Span export for the pipeline stages"""

    enabled: bool = True
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    otlp_endpoint: Optional[str] = Field(
        default=None, description="OTLP gRPC collector, e.g. http://localhost:4317"
    )
    otlp_headers: dict[str, str] = Field(default_factory=dict)
    otlp_insecure: bool = True
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    resource_attributes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "TracingConfig":
        return cls(
            enabled=_env_bool("OTEL_TRACING_ENABLED", True),
            service_name=os.getenv("OTEL_SERVICE_NAME", SERVICE_NAME),
            service_version=os.getenv("OTEL_SERVICE_VERSION", SERVICE_VERSION),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
            otlp_headers=parse_header_list(os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "")),
            otlp_insecure=_env_bool("OTEL_EXPORTER_OTLP_INSECURE", True),
            sample_rate=float(os.getenv("OTEL_TRACE_SAMPLE_RATE", "1.0")),
        )


class MetricsConfig(BaseModel):
    """Prometheus collectors and the optional scrape endpoint"""

    enabled: bool = True
    namespace: str = Field(default="runbook_synth", description="Prefix of every metric name")
    serve: bool = Field(default=False, description="Expose /metrics over HTTP")
    port: int = Field(default=9090, ge=1024, le=65535)
    default_labels: dict[str, str] = Field(
        default_factory=dict, description="Constant labels added to every series"
    )
    # Generation calls dominate the upper buckets.
    duration_buckets: list[float] = Field(
        default_factory=lambda: [0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
    )

    @classmethod
    def from_env(cls) -> "MetricsConfig":
        return cls(
            enabled=_env_bool("PROMETHEUS_METRICS_ENABLED", True),
            serve=_env_bool("PROMETHEUS_METRICS_SERVE", False),
            port=int(os.getenv("PROMETHEUS_METRICS_PORT", "9090")),
        )


class LoggingConfig(BaseModel):
    """Root logger setup"""

    enabled: bool = True
    level: str = "INFO"
    format: str = Field(default="json", description="json or text")
    include_trace_id: bool = True
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["httpx", "httpcore", "openai"],
        description="Client libraries held at WARNING so request lines do not flood the log",
    )

    @field_validator("level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError(f"log format must be 'json' or 'text', got '{v}'")
        return v

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            enabled=_env_bool("LOG_STRUCTURED_ENABLED", True),
            level=os.getenv("LOG_LEVEL", "INFO"),
            format=os.getenv("LOG_FORMAT", "json"),
        )


class TelemetryConfig(BaseModel):
    """Observability switches for one process"""

    enabled: bool = True
    environment: str = "development"
    tracing: TracingConfig = Field(default_factory=TracingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        return cls(
            enabled=_env_bool("TELEMETRY_ENABLED", True),
            environment=os.getenv("ENVIRONMENT", "development"),
            tracing=TracingConfig.from_env(),
            metrics=MetricsConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def get_resource_attributes(self) -> dict[str, str]:
        """OpenTelemetry resource attributes; configured extras win"""
        return {
            "service.name": self.tracing.service_name,
            "service.version": self.tracing.service_version,
            "deployment.environment": self.environment,
            **self.tracing.resource_attributes,
        }

    def should_export_traces(self) -> bool:
        return bool(self.enabled and self.tracing.enabled and self.tracing.otlp_endpoint)

    def should_start_metrics_server(self) -> bool:
        return self.enabled and self.metrics.enabled and self.metrics.serve
