"""
Exception hierarchy for runbook-synth

Degraded-data failures (enrichment, retrieval, single chunk embeddings) are
handled where they occur and never reach the caller. The classes here are
the failures that do cross a component boundary.
"""

from typing import Any, Optional


class RunbookSynthError(Exception):
    """Base exception for all runbook-synth errors"""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
        }


class AlertParseError(RunbookSynthError):
    """Raw alert payload could not be normalized into an Alert"""


class StorageError(RunbookSynthError):
    """Runbook storage could not be listed or read"""


class EmbeddingError(RunbookSynthError):
    """Embedding port failed or returned an unusable vector"""


class GenerationError(RunbookSynthError):
    """
    Generation port failed, timed out, or produced no usable steps.

    This is the only error that fails a whole ``process_alert`` request.
    """

    def __init__(
        self,
        message: str,
        alert_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.alert_id = alert_id
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["alert_id"] = self.alert_id
        result["cause"] = type(self.cause).__name__ if self.cause else None
        return result


class WebhookConfigError(RunbookSynthError):
    """Webhook destination configuration is invalid"""
