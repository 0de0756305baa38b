"""
Test suite for configuration system

Tests RunbookSynthConfig and related configuration classes for proper
loading, validation, and defaults.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from runbook_synth.config import (
    ChunkingConfig,
    LLMConfig,
    RunbookSynthConfig,
    WebhookConfig,
    get_config,
    set_config,
)
from runbook_synth.models import AlertSeverity

CONFIG_YAML = """
runbooks:
  local_dir: /srv/runbooks
  ingest_on_startup: false
chunking:
  max_chunk_size: 1500
  min_chunk_size: 200
embedding:
  provider: hash
  dimension: 128
llm:
  default: fast
  routers:
    fast:
      provider: local
      model: llama3
      base_url: http://localhost:11434/v1
generation:
  timeout: 20
  params:
    top_k: 3
webhooks:
  - name: oncall-slack
    type: slack
    url: https://hooks.slack.com/services/T000/B000/XXXX
    filter:
      severities: [CRITICAL]
telemetry:
  enabled: false
"""


class TestDefaults:
    """Test default configuration values"""

    def test_default_config(self):
        config = RunbookSynthConfig()

        assert config.runbooks.ingest_on_startup is True
        assert config.chunking.max_chunk_size == 2000
        assert config.chunking.min_chunk_size == 100
        assert config.embedding.provider == "hash"
        assert config.vector_store.provider == "memory"
        assert config.llm.routers["default"].provider == "mock"
        assert config.generation.prompt_template == "checklist:v1"
        assert config.generation.params.top_k == 5
        assert config.enrichment.lookback_minutes == 15
        assert config.cloud.provider == "static"
        assert config.webhooks == []

    def test_llm_router_lookup(self):
        config = RunbookSynthConfig()

        assert config.get_llm_router_config().provider == "mock"
        with pytest.raises(ValueError, match="not found"):
            config.get_llm_router_config("missing")


class TestValidation:
    """Test configuration validation"""

    def test_chunk_bounds(self):
        with pytest.raises(ValidationError, match="min_chunk_size must be smaller"):
            ChunkingConfig(max_chunk_size=100, min_chunk_size=100)

    def test_generation_bounds(self):
        with pytest.raises(ValidationError):
            RunbookSynthConfig(generation={"params": {"temperature": 3.0}})

    def test_webhook_type_is_normalized(self):
        assert WebhookConfig(name="a", type=" Slack ", url="https://x").type == "slack"

    def test_webhook_filter_severities(self):
        config = WebhookConfig(name="a", url="https://x", filter={"severities": ["critical"]})
        assert config.filter.severities == {AlertSeverity.CRITICAL}


class TestLoading:
    """Test YAML and environment loading"""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "runbook-synth.yml"
        path.write_text(CONFIG_YAML)

        config = RunbookSynthConfig.load_from_file(str(path))

        assert config.runbooks.local_dir == "/srv/runbooks"
        assert config.chunking.max_chunk_size == 1500
        assert config.embedding.dimension == 128
        assert config.get_llm_router_config().base_url == "http://localhost:11434/v1"
        assert config.generation.timeout == 20
        assert config.generation.params.top_k == 3
        assert config.webhooks[0].filter.severities == {AlertSeverity.CRITICAL}
        assert config.telemetry.enabled is False

    def test_missing_file_uses_defaults(self, tmp_path):
        config = RunbookSynthConfig.load_from_file(str(tmp_path / "missing.yml"))
        assert config.chunking.max_chunk_size == 2000

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("webhooks:\n  - name: broken\n    type: generic\n")

        with pytest.raises(ValidationError, match="url is required"):
            RunbookSynthConfig.load_from_file(str(path))

    def test_environment_overrides(self):
        with patch.dict(
            os.environ,
            {
                "RUNBOOK_SYNTH_LOG_LEVEL": "DEBUG",
                "RUNBOOK_SYNTH_EMBEDDING__DIMENSION": "64",
                "RUNBOOK_SYNTH_RUNBOOKS__INGEST_ON_STARTUP": "false",
            },
        ):
            config = RunbookSynthConfig()

        assert config.log_level == "DEBUG"
        assert config.embedding.dimension == 64
        assert config.runbooks.ingest_on_startup is False

    def test_example_config_is_valid(self):
        example = Path(__file__).parent.parent / "config" / "runbook-synth.example.yml"

        config = RunbookSynthConfig.load_from_file(str(example))

        assert [w.name for w in config.webhooks if w.enabled]


class TestGlobalConfig:
    def test_set_and_get(self):
        config = RunbookSynthConfig(llm=LLMConfig())
        set_config(config)

        assert get_config() is config

    def test_lazy_default(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert get_config().chunking.max_chunk_size == 2000
