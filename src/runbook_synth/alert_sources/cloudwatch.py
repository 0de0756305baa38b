"""
AWS CloudWatch alarms delivered through SNS
"""

import hashlib
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from ..exceptions import AlertParseError
from ..models import Alert, AlertSeverity, utc_now
from .base import register_alert_source

logger = logging.getLogger(__name__)

STATE_SEVERITIES = {
    "ALARM": AlertSeverity.CRITICAL,
    "INSUFFICIENT_DATA": AlertSeverity.WARNING,
}
OFFSET_WITHOUT_COLON = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_state_change_time(value: Optional[str]) -> datetime:
    """CloudWatch timestamps such as ``2024-01-15T10:30:00.000+0000``; now when unparseable"""
    if not value:
        return utc_now()
    text = OFFSET_WITHOUT_COLON.sub(r"\1:\2", value.strip().replace("Z", "+00:00"))
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable StateChangeTime '{value}', using current time")
        return utc_now()
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def alert_id_for(message_id: Optional[str], alarm_arn: Optional[str]) -> str:
    if not message_id and not alarm_arn:
        return f"cw-{uuid.uuid4().hex[:16]}"
    digest = hashlib.sha256(f"{message_id or ''}:{alarm_arn or ''}".encode("utf-8"))
    return f"cw-{digest.hexdigest()[:16]}"


@register_alert_source
class CloudWatchSnsAlertSource:
    """SNS ``Notification`` envelope wrapping a CloudWatch alarm state change"""

    source_type = "aws-cloudwatch-sns"

    def can_handle(self, payload: dict[str, Any]) -> bool:
        message = payload.get("Message")
        return (
            payload.get("Type") == "Notification"
            and isinstance(message, str)
            and "AlarmName" in message
        )

    def parse(self, payload: dict[str, Any]) -> Optional[Alert]:
        try:
            alarm = json.loads(payload["Message"])
        except (KeyError, TypeError, ValueError) as e:
            raise AlertParseError(f"SNS Message is not a CloudWatch alarm: {e}") from e

        state = alarm.get("NewStateValue")
        if not state:
            raise AlertParseError("CloudWatch alarm is missing NewStateValue")
        if state == "OK":
            logger.info(f"Ignoring OK state for alarm {alarm.get('AlarmName')}")
            return None

        trigger = alarm.get("Trigger") or {}
        dimensions: dict[str, str] = {}
        if trigger.get("MetricName"):
            dimensions["MetricName"] = str(trigger["MetricName"])
        if trigger.get("Namespace"):
            dimensions["Namespace"] = str(trigger["Namespace"])
        for dimension in trigger.get("Dimensions") or []:
            name = dimension.get("name") or dimension.get("Name")
            value = dimension.get("value") or dimension.get("Value")
            if name and value is not None:
                dimensions[str(name)] = str(value)

        labels = {"state": state}
        for key, label in (("Region", "region"), ("AWSAccountId", "account_id"), ("AlarmArn", "alarm_arn")):
            if alarm.get(key):
                labels[label] = str(alarm[key])

        return Alert(
            id=alert_id_for(payload.get("MessageId"), alarm.get("AlarmArn")),
            title=alarm.get("AlarmName") or "CloudWatch alarm",
            message=alarm.get("NewStateReason") or "",
            severity=STATE_SEVERITIES.get(state, AlertSeverity.INFO),
            source_service=self.source_type,
            dimensions=dimensions,
            labels=labels,
            timestamp=parse_state_change_time(alarm.get("StateChangeTime")),
            raw_payload=json.dumps(payload),
        )
