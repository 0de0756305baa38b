"""
Concrete checklist destinations: generic webhook, Slack, PagerDuty and
local JSON files
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any

from ..config import WebhookConfig
from ..exceptions import WebhookConfigError
from ..models import AlertSeverity, DynamicChecklist, StepPriority
from .base import HttpWebhookDestination, WebhookDestination, WebhookResult

logger = logging.getLogger(__name__)

SLACK_MAX_STEP_BLOCKS = 40
SLACK_HEADER_LIMIT = 150

PRIORITY_MARKERS = {
    StepPriority.CRITICAL: ":red_circle:",
    StepPriority.HIGH: ":large_orange_circle:",
    StepPriority.MEDIUM: ":large_yellow_circle:",
    StepPriority.LOW: ":white_circle:",
}

PAGERDUTY_SEVERITIES = {
    AlertSeverity.CRITICAL: "critical",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.INFO: "info",
}


class GenericWebhookDestination(HttpWebhookDestination):
    """POSTs the checklist as JSON"""

    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        return checklist.model_dump(mode="json")


class SlackWebhookDestination(HttpWebhookDestination):
    """Slack incoming webhook using Block Kit"""

    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        severity = checklist.severity.value if checklist.severity else "UNKNOWN"
        header = f"[{severity}] Troubleshooting checklist: {checklist.alert_id}"
        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header[:SLACK_HEADER_LIMIT]},
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": checklist.summary}},
            {"type": "divider"},
        ]

        for step in checklist.steps[:SLACK_MAX_STEP_BLOCKS]:
            text = f"{PRIORITY_MARKERS[step.priority]} *{step.order}.* {step.description}"
            if step.commands:
                text += "\n```" + "\n".join(step.commands) + "```"
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": text}})

        if checklist.source_runbooks:
            sources = ", ".join(f"`{path}`" for path in checklist.source_runbooks)
            blocks.append(
                {"type": "context", "elements": [{"type": "mrkdwn", "text": f"Sources: {sources}"}]}
            )

        return {"text": header, "blocks": blocks}


class PagerDutyWebhookDestination(HttpWebhookDestination):
    """PagerDuty Events API v2 trigger, deduplicated by alert id"""

    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        severity = PAGERDUTY_SEVERITIES.get(checklist.severity, "info")
        return {
            "routing_key": self.config.routing_key,
            "event_action": "trigger",
            "dedup_key": checklist.alert_id,
            "payload": {
                "summary": checklist.summary[:1024],
                "source": "runbook-synth",
                "severity": severity,
                "timestamp": checklist.generated_at.isoformat(),
                "custom_details": {
                    "steps": [
                        f"{step.order}. [{step.priority.value}] {step.description}"
                        for step in checklist.steps
                    ],
                    "source_runbooks": checklist.source_runbooks,
                },
            },
        }


def safe_filename_part(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", value)[:100] or "alert"


class FileOutputDestination(WebhookDestination):
    """Writes each checklist to ``checklist-<alert id>-<UTC timestamp>.json``"""

    @property
    def output_dir(self) -> Path:
        return Path(self.config.output_dir)

    def filename_for(self, checklist: DynamicChecklist) -> str:
        stamp = checklist.generated_at.strftime("%Y%m%d-%H%M%S")
        return f"checklist-{safe_filename_part(checklist.alert_id)}-{stamp}.json"

    def _write(self, checklist: DynamicChecklist) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / self.filename_for(checklist)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(checklist.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        return target

    async def send(self, checklist: DynamicChecklist) -> WebhookResult:
        try:
            target = await asyncio.to_thread(self._write, checklist)
        except OSError as e:
            return WebhookResult.failed(self.name, f"Cannot write checklist: {e}")
        logger.debug(f"Checklist for {checklist.alert_id} written to {target}")
        return WebhookResult.ok(self.name)


DESTINATION_TYPES: dict[str, type[WebhookDestination]] = {
    "generic": GenericWebhookDestination,
    "slack": SlackWebhookDestination,
    "pagerduty": PagerDutyWebhookDestination,
    "file": FileOutputDestination,
}


def create_destination(config: WebhookConfig) -> WebhookDestination:
    """
    Build the destination for one webhook config

    Raises:
        WebhookConfigError: Unknown type or missing PagerDuty routing key
    """
    destination_type = DESTINATION_TYPES.get(config.type)
    if destination_type is None:
        raise WebhookConfigError(
            f"Unknown webhook type '{config.type}' for '{config.name}'. "
            f"Supported: {', '.join(DESTINATION_TYPES)}",
            {"webhook": config.name},
        )
    if config.type == "pagerduty" and not config.routing_key:
        raise WebhookConfigError(
            f"Webhook '{config.name}': routing_key is required for PagerDuty",
            {"webhook": config.name},
        )
    return destination_type(config)


def create_destinations(configs: list[WebhookConfig]) -> list[WebhookDestination]:
    """Destinations for every enabled config"""
    destinations = []
    for config in configs:
        if not config.enabled:
            logger.info(f"Webhook '{config.name}' is disabled; skipping")
            continue
        destinations.append(create_destination(config))
    return destinations
