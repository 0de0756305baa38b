"""
Alerts already in the normalized shape
"""

import json
import logging
import uuid
from typing import Any, Optional

from pydantic import ValidationError

from ..exceptions import AlertParseError
from ..models import Alert, AlertSeverity
from .base import register_alert_source

logger = logging.getLogger(__name__)


@register_alert_source
class GenericAlertSource:
    """
    JSON object with ``title`` and ``severity``

    Optional fields: ``id``, ``message``, ``source_service``, ``dimensions``,
    ``labels``, ``timestamp``. A ``state`` of ``OK`` is a recovery event.
    """

    source_type = "generic"

    def can_handle(self, payload: dict[str, Any]) -> bool:
        return "title" in payload and "severity" in payload

    def parse(self, payload: dict[str, Any]) -> Optional[Alert]:
        if str(payload.get("state", "")).upper() == "OK":
            logger.info(f"Ignoring OK state for alert '{payload.get('title')}'")
            return None

        try:
            severity = AlertSeverity.from_string(payload["severity"])
        except ValueError as e:
            raise AlertParseError(str(e), {"severity": payload.get("severity")}) from e

        data = {
            key: payload[key]
            for key in ("message", "source_service", "dimensions", "labels", "timestamp")
            if payload.get(key) is not None
        }
        try:
            return Alert(
                id=str(payload.get("id") or f"alert-{uuid.uuid4().hex[:16]}"),
                title=str(payload["title"]),
                severity=severity,
                raw_payload=json.dumps(payload, default=str),
                **data,
            )
        except ValidationError as e:
            raise AlertParseError(f"Invalid alert payload: {e}") from e
