"""
Configuration management for runbook-synth

Provides pydantic-based configuration with environment variable support
and YAML file loading capabilities.
"""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import AlertSeverity, GenerationConfig
from .observability.config import TelemetryConfig

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"


class RunbooksConfig(BaseModel):
    """Runbook source configuration"""

    bucket: str = "runbook-synthesizer-runbooks"
    prefix: str = ""
    extensions: list[str] = Field(default_factory=lambda: [".md"])
    local_dir: str = "runbooks"
    ingest_on_startup: bool = True
    startup_timeout: float = Field(default=120.0, gt=0)


class ChunkingConfig(BaseModel):
    """Chunker size limits (characters)"""

    max_chunk_size: int = Field(default=2000, gt=0)
    min_chunk_size: int = Field(default=100, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingConfig":
        if self.min_chunk_size >= self.max_chunk_size:
            raise ValueError("min_chunk_size must be smaller than max_chunk_size")
        return self


class EmbeddingConfig(BaseModel):
    """Embedding port configuration"""

    provider: str = "hash"  # "hash", "sentence_transformers", "openai"
    model: str = "all-MiniLM-L6-v2"
    dimension: int = Field(default=384, gt=0)
    timeout: float = Field(default=10.0, gt=0)
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_concurrent: int = Field(default=4, gt=0)


class VectorStoreConfig(BaseModel):
    """Vector index backend configuration"""

    provider: str = "memory"  # "memory", "file"
    path: str = ".runbook_synth/index.json"


class LLMRouterConfig(BaseModel):
    """Single LLM router configuration"""

    provider: str = "mock"  # "openai", "local", "mock"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, gt=0)
    timeout: float = Field(default=30.0, gt=0)
    mock_responses_path: Optional[str] = None


class LLMConfig(BaseModel):
    """LLM configuration"""

    default: str = "default"
    routers: dict[str, LLMRouterConfig] = Field(
        default_factory=lambda: {"default": LLMRouterConfig()}
    )


class GenerationSettings(BaseModel):
    """Checklist generation settings"""

    params: GenerationConfig = Field(default_factory=GenerationConfig)
    timeout: float = Field(default=60.0, gt=0)
    prompt_template: str = "checklist:v1"
    prompts_dir: Optional[str] = None


class EnrichmentConfig(BaseModel):
    """Context enrichment settings"""

    lookback_minutes: int = Field(default=15, gt=0)
    fetch_timeout: float = Field(default=5.0, gt=0)
    log_query: Optional[str] = None
    resource_id_keys: list[str] = Field(
        default_factory=lambda: ["resourceId", "instanceId", "InstanceId", "resource_id"]
    )


class CloudConfig(BaseModel):
    """Context source selection"""

    provider: str = "static"
    fixtures_path: Optional[str] = None


class WebhookFilter(BaseModel):
    """Which checklists a destination receives; empty fields match everything"""

    severities: set[AlertSeverity] = Field(default_factory=set)
    required_labels: dict[str, str] = Field(default_factory=dict)

    def matches(self, severity: Optional[AlertSeverity], labels: dict[str, str]) -> bool:
        if self.severities and severity not in self.severities:
            return False
        return all(labels.get(key) == value for key, value in self.required_labels.items())


class WebhookConfig(BaseModel):
    """Configuration for one output destination"""

    name: str = Field(min_length=1)
    type: str = "generic"  # "generic", "slack", "pagerduty", "file"
    url: Optional[str] = None
    enabled: bool = True
    filter: WebhookFilter = Field(default_factory=WebhookFilter)
    headers: dict[str, str] = Field(default_factory=dict)
    retry_count: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0)
    timeout: float = Field(default=30.0, gt=0)
    routing_key: Optional[str] = None
    output_dir: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_target(self) -> "WebhookConfig":
        if self.type == "file":
            if not self.output_dir:
                raise ValueError(f"Webhook '{self.name}': output_dir is required for file output")
            return self
        if self.type == "pagerduty" and not self.url:
            self.url = PAGERDUTY_EVENTS_URL
        if not self.url:
            raise ValueError(f"Webhook '{self.name}': url is required")
        if not self.url.startswith(("http://", "https://")):
            raise ValueError(f"Webhook '{self.name}': url must be a valid HTTP/HTTPS URL")
        return self


class RunbookSynthConfig(BaseSettings):
    """Main runbook-synth configuration"""

    model_config = SettingsConfigDict(
        env_prefix="RUNBOOK_SYNTH_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    runbooks: RunbooksConfig = Field(default_factory=RunbooksConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    webhooks: list[WebhookConfig] = Field(default_factory=list)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    log_level: str = "INFO"

    @classmethod
    def load_from_file(cls, config_path: str = "runbook-synth.yml") -> "RunbookSynthConfig":
        """Load configuration from a YAML file; environment variables fill fields the file leaves unset"""
        config_file = Path(config_path)
        config_data: dict[str, Any] = {}

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def get_llm_router_config(self, router_name: Optional[str] = None) -> LLMRouterConfig:
        """Get LLM router configuration"""
        router_name = router_name or self.llm.default
        if router_name not in self.llm.routers:
            raise ValueError(f"LLM router '{router_name}' not found in configuration")
        return self.llm.routers[router_name]


# Global configuration instance
_config: Optional[RunbookSynthConfig] = None


def get_config() -> RunbookSynthConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = RunbookSynthConfig.load_from_file()
    return _config


def set_config(config: Optional[RunbookSynthConfig]) -> None:
    """Set (or clear) the global configuration instance"""
    global _config
    _config = config
