"""
Alert sources

Importing this package registers the built-in sources, CloudWatch via SNS
first so its envelope is never mistaken for a generic alert.
"""

from .base import (
    AlertSource,
    AlertSourceRegistry,
    load_payload,
    parse_alert,
    register_alert_source,
    registry,
)
from .cloudwatch import CloudWatchSnsAlertSource
from .generic import GenericAlertSource

__all__ = [
    "AlertSource",
    "AlertSourceRegistry",
    "CloudWatchSnsAlertSource",
    "GenericAlertSource",
    "load_payload",
    "parse_alert",
    "register_alert_source",
    "registry",
]
