"""
Command-line interface for runbook-synth

Provides CLI commands for:
- Generating a checklist: runbook-synth process-alert --alert-file alert.json
- Ingesting runbooks: runbook-synth ingest [--path memory/high-memory.md]
- Showing configuration: runbook-synth config --show
"""

import asyncio
import json
import sys

import click
import yaml

from . import __version__
from .alert_sources import load_payload, parse_alert
from .app import build_application
from .config import RunbookSynthConfig, get_config, set_config
from .exceptions import RunbookSynthError
from .models import Alert
from .observability import initialize_observability


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="runbook-synth")
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML configuration file (default: runbook-synth.yml)",
)
def cli(config_file):
    """runbook-synth - troubleshooting checklists from alerts and runbooks"""
    if config_file:
        set_config(RunbookSynthConfig.load_from_file(config_file))


async def _process(alert: Alert):
    app = build_application(get_config())
    await app.startup()
    try:
        return await app.process_alert(alert)
    finally:
        await app.shutdown()


@cli.command("process-alert")
@click.option(
    "--alert-file",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="JSON file containing the alert",
)
@click.option("--raw", is_flag=True, help="Normalize a raw monitoring payload first")
def process_alert(alert_file: str, raw: bool):
    """Generate a troubleshooting checklist for an alert"""
    try:
        with open(alert_file, encoding="utf-8") as f:
            content = f.read()
        if raw:
            alert = parse_alert(content)
            if alert is None:
                click.echo("Alert is an OK/recovery event; nothing to do")
                return
        else:
            alert = Alert.model_validate(load_payload(content))

        checklist = asyncio.run(_process(alert))
    except (RunbookSynthError, ValueError, OSError) as e:
        _fail(str(e))
        return

    click.echo(f"Checklist for alert {checklist.alert_id}")
    click.echo("=" * 50)
    click.echo(checklist.summary)
    click.echo("")
    for step in checklist.steps:
        click.echo(f"  {step.order}. [{step.priority.value}] {step.description}")
        for command in step.commands:
            click.echo(f"       $ {command}")
    if checklist.source_runbooks:
        click.echo(f"\nSources: {', '.join(checklist.source_runbooks)}")


async def _ingest(path):
    app = build_application(get_config())
    initialize_observability(app.config.telemetry)
    try:
        return await app.ingest(path)
    finally:
        await app.shutdown()


@cli.command()
@click.option("--path", default=None, help="Ingest a single runbook (relative path)")
def ingest(path):
    """Ingest runbooks into the vector index"""
    try:
        result = asyncio.run(_ingest(path))
    except (RunbookSynthError, ValueError, OSError) as e:
        _fail(str(e))
        return

    click.echo(
        f"Documents processed: {result.documents_processed}, failed: {result.documents_failed}"
    )
    click.echo(f"Chunks stored: {result.chunks_stored}, failed: {result.chunks_failed}")
    for failed_path in result.failed_paths:
        click.echo(f"  failed: {failed_path}")
    if result.documents_failed:
        sys.exit(1)


@cli.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--format", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format")
def config(show: bool, format: str):
    """Show runbook-synth configuration"""
    if not show:
        click.echo("Use --show to display current configuration")
        click.echo("Available options:")
        click.echo("  --show          Show current configuration")
        click.echo("  --format yaml   Output in YAML format (default)")
        click.echo("  --format json   Output in JSON format")
        return

    try:
        config_dict = get_config().model_dump(mode="json")
    except ValueError as e:
        _fail(f"Failed to load configuration: {e}")
        return

    if format == "yaml":
        click.echo(yaml.dump(config_dict, default_flow_style=False, indent=2))
    else:
        click.echo(json.dumps(config_dict, indent=2))


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
