"""
Test suite for CLI interface

Tests CLI commands, argument parsing, and integration with the pipeline
using offline providers.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner
from conftest import build_high_memory_runbook

from runbook_synth.cli import cli
from runbook_synth.exceptions import GenerationError

SAMPLE_ALERT = Path(__file__).parent.parent / "config" / "sample-alert.json"


@pytest.fixture
def workspace(tmp_path):
    """Runbook directory, output directory and a config file pointing at both"""
    runbooks = tmp_path / "runbooks"
    (runbooks / "memory").mkdir(parents=True)
    (runbooks / "memory" / "high-memory.md").write_text(build_high_memory_runbook())
    output_dir = tmp_path / "out"

    config_file = tmp_path / "runbook-synth.yml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "runbooks": {"local_dir": str(runbooks), "ingest_on_startup": True},
                "embedding": {"provider": "hash", "dimension": 256},
                "vector_store": {"provider": "file", "path": str(tmp_path / "index.json")},
                "llm": {"routers": {"default": {"provider": "mock"}}},
                "webhooks": [{"name": "local-file", "type": "file", "output_dir": str(output_dir)}],
                "telemetry": {"enabled": False},
            }
        )
    )
    return {"config": str(config_file), "output_dir": output_dir, "index": tmp_path / "index.json"}


class TestCLICommands:
    """Test CLI command functionality"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_cli_group_help(self):
        result = self.runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "troubleshooting checklists" in result.output
        assert "process-alert" in result.output
        assert "ingest" in result.output
        assert "config" in result.output

    def test_cli_version(self):
        result = self.runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_process_alert_missing_file_option(self):
        result = self.runner.invoke(cli, ["process-alert"])

        assert result.exit_code != 0
        assert "--alert-file" in result.output


class TestProcessAlert:
    """Test the process-alert command end to end"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_raw_cloudwatch_alert(self, workspace):
        result = self.runner.invoke(
            cli,
            ["--config-file", workspace["config"], "process-alert", "--alert-file", str(SAMPLE_ALERT), "--raw"],
        )

        assert result.exit_code == 0, result.output
        assert "Checklist for alert cw-" in result.output
        assert "1. [HIGH]" in result.output
        assert "$ free -m" in result.output
        assert "Sources: memory/high-memory.md" in result.output

        written = list(workspace["output_dir"].glob("checklist-cw-*.json"))
        assert len(written) == 1
        assert len(json.loads(written[0].read_text())["steps"]) == 4

    def test_normalized_alert(self, workspace, tmp_path):
        alert_file = tmp_path / "alert.json"
        alert_file.write_text(
            json.dumps(
                {
                    "id": "alert-42",
                    "title": "High memory usage on web-01",
                    "severity": "CRITICAL",
                    "dimensions": {"resourceId": "i-123"},
                }
            )
        )

        result = self.runner.invoke(
            cli, ["--config-file", workspace["config"], "process-alert", "--alert-file", str(alert_file)]
        )

        assert result.exit_code == 0, result.output
        assert "Checklist for alert alert-42" in result.output

    def test_ok_event(self, workspace, tmp_path):
        alarm = {"AlarmName": "web-01 high memory", "NewStateValue": "OK"}
        alert_file = tmp_path / "ok.json"
        alert_file.write_text(json.dumps({"Type": "Notification", "Message": json.dumps(alarm)}))

        result = self.runner.invoke(
            cli, ["--config-file", workspace["config"], "process-alert", "--alert-file", str(alert_file), "--raw"]
        )

        assert result.exit_code == 0
        assert "nothing to do" in result.output

    def test_invalid_alert(self, workspace, tmp_path):
        alert_file = tmp_path / "bad.json"
        alert_file.write_text("{not json")

        result = self.runner.invoke(
            cli, ["--config-file", workspace["config"], "process-alert", "--alert-file", str(alert_file)]
        )

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_generation_failure(self, workspace):
        with patch(
            "runbook_synth.generator.ChecklistGenerator.generate",
            side_effect=GenerationError("LLM request failed: quota"),
        ):
            result = self.runner.invoke(
                cli,
                ["--config-file", workspace["config"], "process-alert", "--alert-file", str(SAMPLE_ALERT), "--raw"],
            )

        assert result.exit_code == 1
        assert "Error: LLM request failed: quota" in result.output
        assert not workspace["output_dir"].exists()


class TestIngest:
    """Test the ingest command"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_ingest_all(self, workspace):
        result = self.runner.invoke(cli, ["--config-file", workspace["config"], "ingest"])

        assert result.exit_code == 0, result.output
        assert "Documents processed: 1, failed: 0" in result.output
        assert workspace["index"].exists()

    def test_ingest_missing_path(self, workspace):
        result = self.runner.invoke(cli, ["--config-file", workspace["config"], "ingest", "--path", "missing.md"])

        assert result.exit_code == 1
        assert "failed: missing.md" in result.output


class TestConfigCommand:
    """Test the config command"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_config_no_options(self):
        result = self.runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "Use --show" in result.output

    def test_show_yaml(self, workspace):
        result = self.runner.invoke(cli, ["--config-file", workspace["config"], "config", "--show"])

        assert result.exit_code == 0
        data = yaml.safe_load(result.output)
        assert data["embedding"]["dimension"] == 256
        assert data["webhooks"][0]["name"] == "local-file"

    def test_show_json(self, workspace):
        result = self.runner.invoke(cli, ["--config-file", workspace["config"], "config", "--show", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["vector_store"]["provider"] == "file"
