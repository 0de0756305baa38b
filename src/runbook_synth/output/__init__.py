"""
Checklist output destinations and dispatch
"""

from .base import HttpWebhookDestination, WebhookDestination, WebhookResult
from .destinations import (
    FileOutputDestination,
    GenericWebhookDestination,
    PagerDutyWebhookDestination,
    SlackWebhookDestination,
    create_destination,
    create_destinations,
)
from .dispatcher import WebhookDispatcher

__all__ = [
    "FileOutputDestination",
    "GenericWebhookDestination",
    "HttpWebhookDestination",
    "PagerDutyWebhookDestination",
    "SlackWebhookDestination",
    "WebhookDestination",
    "WebhookDispatcher",
    "WebhookResult",
    "create_destination",
    "create_destinations",
]
