"""
runbook-synth - context-aware troubleshooting checklists from alerts

Normalizes monitoring alerts, enriches them with live resource context,
retrieves relevant runbook passages from a vector index and asks an LLM for
an ordered checklist that is then delivered to webhooks.
"""

__version__ = "0.1.0"

from .app import Application, build_application
from .config import RunbookSynthConfig
from .exceptions import GenerationError, RunbookSynthError
from .models import Alert, AlertSeverity, DynamicChecklist
from .pipeline import RagPipeline

__all__ = [
    "Alert",
    "AlertSeverity",
    "Application",
    "DynamicChecklist",
    "GenerationError",
    "RagPipeline",
    "RunbookSynthConfig",
    "RunbookSynthError",
    "build_application",
    "__version__",
]
