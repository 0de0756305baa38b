"""
Core data models for runbook-synth

Defines alerts, enrichment context, indexed runbook chunks and generated
checklists using Pydantic for validation and serialization.
"""

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AlertSeverity(str, Enum):
    """Normalized alert severity"""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_string(cls, value: str) -> "AlertSeverity":
        """Parse a severity name case-insensitively"""
        if value is None:
            raise ValueError("Severity cannot be None")
        try:
            return cls(str(value).strip().upper())
        except ValueError as e:
            raise ValueError(f"Unknown severity: {value}") from e


class StepPriority(str, Enum):
    """Priority of a single checklist step"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Any, default: "StepPriority" = None) -> "StepPriority":
        """Lenient parse used for LLM output; unknown values map to ``default``"""
        default = default or cls.MEDIUM
        if isinstance(value, cls):
            return value
        if not value:
            return default
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return default


class PipelineState(str, Enum):
    """Per-request pipeline state"""

    RECEIVED = "RECEIVED"
    ENRICHED = "ENRICHED"
    RETRIEVED = "RETRIEVED"
    GENERATED = "GENERATED"
    DISPATCHED = "DISPATCHED"
    FAILED = "FAILED"


class Alert(BaseModel):
    """Normalized incoming alert"""

    id: str = Field(min_length=1)
    title: str
    message: str = ""
    severity: AlertSeverity
    source_service: str = "unknown"
    dimensions: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    raw_payload: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return AlertSeverity.from_string(value)
        return value


class ResourceMetadata(BaseModel):
    """Snapshot of the alarming resource"""

    id: str
    display_name: Optional[str] = None
    shape: Optional[str] = None
    zone: Optional[str] = None
    compartment_id: Optional[str] = None
    tags: dict[str, str] = Field(default_factory=dict)


class MetricSnapshot(BaseModel):
    """One timestamped metric sample"""

    metric_name: str
    timestamp: datetime
    value: float
    unit: str = ""
    namespace: Optional[str] = None


class LogEntry(BaseModel):
    """One log line or event"""

    timestamp: datetime
    message: str
    source: str = ""
    severity: str = "INFO"
    id: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class EnrichedContext(BaseModel):
    """Aggregated situational data for one alert"""

    alert: Alert
    resource: Optional[ResourceMetadata] = None
    metrics: list[MetricSnapshot] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)
    custom_properties: dict[str, Any] = Field(default_factory=dict)


class RunbookFrontmatter(BaseModel):
    """Metadata block at the top of a runbook document"""

    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    tags: tuple[str, ...] = ()
    applicable_shapes: tuple[str, ...] = ()
    extra: dict[str, Any] = Field(default_factory=dict)


def make_chunk_id(source_path: str, chunk_index: int) -> str:
    """Stable chunk id derived from the source path and position"""
    digest = hashlib.sha256(f"{source_path}::{chunk_index}".encode("utf-8"))
    return digest.hexdigest()[:32]


class RunbookChunk(BaseModel):
    """One indexed passage of a runbook"""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    source_path: str
    section_title: str
    chunk_index: int = Field(ge=0)
    metadata: RunbookFrontmatter = Field(default_factory=RunbookFrontmatter)
    embedding: Optional[tuple[float, ...]] = None

    @property
    def tags(self) -> tuple[str, ...]:
        return self.metadata.tags

    @property
    def applicable_shapes(self) -> tuple[str, ...]:
        return self.metadata.applicable_shapes

    def with_embedding(self, embedding: list[float]) -> "RunbookChunk":
        """Return a copy carrying ``embedding``"""
        return self.model_copy(update={"embedding": tuple(float(v) for v in embedding)})


class RetrievedChunk(BaseModel):
    """A chunk and its relevance for one query"""

    chunk: RunbookChunk
    similarity_score: float
    metadata_boost: float = 0.0
    score: float

    @classmethod
    def from_similarity(cls, chunk: RunbookChunk, similarity: float) -> "RetrievedChunk":
        return cls(chunk=chunk, similarity_score=similarity, score=similarity)


class ChecklistStep(BaseModel):
    """One actionable checklist step"""

    order: int = Field(default=1, ge=1)
    description: str = Field(min_length=1)
    priority: StepPriority = StepPriority.MEDIUM
    source_chunk_id: Optional[str] = None
    rationale: Optional[str] = None
    commands: list[str] = Field(default_factory=list)


class DynamicChecklist(BaseModel):
    """Generated troubleshooting checklist"""

    alert_id: str
    summary: str
    steps: list[ChecklistStep] = Field(min_length=1)
    severity: Optional[AlertSeverity] = None
    labels: dict[str, str] = Field(default_factory=dict)
    source_runbooks: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)
    llm_provider: Optional[str] = None


class GenerationConfig(BaseModel):
    """Parameters for one generation call"""

    model: Optional[str] = None
    max_tokens: int = Field(default=1024, gt=0)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    top_k: int = Field(default=5, ge=1)


class IngestionResult(BaseModel):
    """Counts reported by one ingestion call"""

    documents_processed: int = 0
    documents_failed: int = 0
    chunks_stored: int = 0
    chunks_failed: int = 0
    failed_paths: list[str] = Field(default_factory=list)

    def __add__(self, other: "IngestionResult") -> "IngestionResult":
        return IngestionResult(
            documents_processed=self.documents_processed + other.documents_processed,
            documents_failed=self.documents_failed + other.documents_failed,
            chunks_stored=self.chunks_stored + other.chunks_stored,
            chunks_failed=self.chunks_failed + other.chunks_failed,
            failed_paths=self.failed_paths + other.failed_paths,
        )
