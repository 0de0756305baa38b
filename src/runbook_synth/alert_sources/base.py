"""
Alert source normalization

Each ``AlertSource`` recognises one raw payload shape and turns it into an
``Alert``. Sources register themselves with ``@register_alert_source``;
``parse_alert`` routes a payload to the first source that can handle it.
"""

import json
import logging
from typing import Any, Optional, Protocol, Union, runtime_checkable

from ..exceptions import AlertParseError
from ..models import Alert

logger = logging.getLogger(__name__)

RawAlert = Union[str, bytes, dict[str, Any]]


@runtime_checkable
class AlertSource(Protocol):
    """Normalizes one monitoring system's payloads"""

    source_type: str

    def can_handle(self, payload: dict[str, Any]) -> bool:
        ...

    def parse(self, payload: dict[str, Any]) -> Optional[Alert]:
        """The alert, or None for OK / recovery events"""
        ...


def load_payload(raw: RawAlert) -> dict[str, Any]:
    """Decode a raw payload into a JSON object"""
    if isinstance(raw, dict):
        return raw
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise AlertParseError(f"Alert payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise AlertParseError("Alert payload must be a JSON object")
    return payload


class AlertSourceRegistry:
    """Ordered registry of alert sources"""

    def __init__(self):
        self._sources: dict[str, type] = {}

    def register(self, source_class: type) -> None:
        source_type = getattr(source_class, "source_type", None)
        if not source_type:
            raise ValueError(
                f"Alert source class {source_class.__name__} must have a 'source_type' attribute"
            )
        self._sources[source_type] = source_class
        logger.debug(f"Registered alert source: {source_type}")

    def get_available_sources(self) -> list[str]:
        return list(self._sources)

    def create_sources(self) -> list[AlertSource]:
        return [source_class() for source_class in self._sources.values()]

    def parse(self, raw: RawAlert) -> Optional[Alert]:
        """
        Normalize ``raw`` with the first matching source

        Raises:
            AlertParseError: If no source recognises the payload or the
                matching source rejects it
        """
        payload = load_payload(raw)
        for source in self.create_sources():
            if source.can_handle(payload):
                logger.debug(f"Alert payload handled by {source.source_type}")
                return source.parse(payload)
        raise AlertParseError(
            "No alert source recognises this payload",
            {"available_sources": self.get_available_sources()},
        )


registry = AlertSourceRegistry()


def register_alert_source(source_class: type) -> type:
    """Decorator for registering alert source classes"""
    registry.register(source_class)
    return source_class


def parse_alert(raw: RawAlert) -> Optional[Alert]:
    """Normalize a raw payload with the global registry"""
    return registry.parse(raw)
