"""
Destination contract for generated checklists
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from ..config import WebhookConfig
from ..models import DynamicChecklist, utc_now

logger = logging.getLogger(__name__)


class WebhookResult(BaseModel):
    """Outcome of delivering one checklist to one destination"""

    destination: str
    success: bool
    status_code: int = 0
    error: Optional[str] = None
    sent_at: datetime = Field(default_factory=utc_now)
    attempts: int = 1
    retryable: bool = False

    @classmethod
    def ok(cls, destination: str, status_code: int = 200) -> "WebhookResult":
        return cls(destination=destination, success=True, status_code=status_code)

    @classmethod
    def failed(
        cls, destination: str, error: str, status_code: int = 0, retryable: bool = False
    ) -> "WebhookResult":
        return cls(
            destination=destination,
            success=False,
            status_code=status_code,
            error=error,
            retryable=retryable,
        )


class WebhookDestination(ABC):
    """One configured output channel"""

    def __init__(self, config: WebhookConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    def should_send(self, checklist: DynamicChecklist) -> bool:
        return self.config.enabled and self.config.filter.matches(
            checklist.severity, checklist.labels
        )

    @abstractmethod
    async def send(self, checklist: DynamicChecklist) -> WebhookResult:
        """Deliver ``checklist`` once; failures are returned, not raised"""


class HttpWebhookDestination(WebhookDestination):
    """
    Destination that POSTs a JSON payload

    5xx responses and transport errors (connection, timeout) are marked
    retryable; other non-2xx responses are not.
    """

    @abstractmethod
    def build_payload(self, checklist: DynamicChecklist) -> dict[str, Any]:
        ...

    async def send(self, checklist: DynamicChecklist) -> WebhookResult:
        payload = self.build_payload(checklist)
        headers = {"Content-Type": "application/json", **self.config.headers}
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(self.config.url, json=payload, headers=headers)
        except httpx.TransportError as e:
            return WebhookResult.failed(
                self.name, f"{type(e).__name__}: {e}", status_code=0, retryable=True
            )

        if 200 <= response.status_code < 300:
            return WebhookResult.ok(self.name, response.status_code)
        return WebhookResult.failed(
            self.name,
            f"HTTP {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
            retryable=response.status_code >= 500,
        )
