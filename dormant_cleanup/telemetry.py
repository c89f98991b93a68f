"""Write-only observability sink: named events and operation spans."""
from __future__ import annotations

import contextlib
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

USER_DELETED = "User deleted"
SEARCH_COMPLETED = "Search completed"
GROUP_RESOLVED = "Protected group resolved"


@dataclass
class TelemetryEvent:
    name: str
    properties: Dict[str, str] = field(default_factory=dict)
    measurements: Dict[str, float] = field(default_factory=dict)
    operation_id: Optional[str] = None


class Telemetry(ABC):
    """Base sink. Subclasses decide where events go."""

    def __init__(self) -> None:
        self._operation_id: Optional[str] = None

    def track_event(
        self,
        name: str,
        properties: Optional[Dict[str, Any]] = None,
        measurements: Optional[Dict[str, float]] = None,
    ) -> None:
        event = TelemetryEvent(
            name=name,
            properties={key: str(value) for key, value in (properties or {}).items()},
            measurements=dict(measurements or {}),
            operation_id=self._operation_id,
        )
        self._emit(event)

    @abstractmethod
    def _emit(self, event: TelemetryEvent) -> None:
        """Deliver one event to the backing store."""

    @contextlib.contextmanager
    def operation(self, name: str) -> Iterator[str]:
        """Wrap a unit of work in a span; events tracked inside carry its id."""

        operation_id = uuid.uuid4().hex
        parent = self._operation_id
        self._operation_id = operation_id
        started = time.monotonic()
        logger.info("Operation %s started (id=%s)", name, operation_id)
        try:
            yield operation_id
        except Exception:
            logger.exception(
                "Operation %s failed after %.2fs (id=%s)",
                name,
                time.monotonic() - started,
                operation_id,
            )
            raise
        else:
            logger.info(
                "Operation %s completed in %.2fs (id=%s)",
                name,
                time.monotonic() - started,
                operation_id,
            )
        finally:
            self._operation_id = parent


class LoggingTelemetry(Telemetry):
    """Writes each event as a structured log record."""

    def __init__(self, name: str = "dormant_cleanup.events") -> None:
        super().__init__()
        self._logger = logging.getLogger(name)

    def _emit(self, event: TelemetryEvent) -> None:
        self._logger.info(
            "event=%s properties=%s measurements=%s",
            event.name,
            event.properties,
            event.measurements,
            extra={"telemetry_event": event.name, "operation_id": event.operation_id},
        )


__all__ = [
    "GROUP_RESOLVED",
    "LoggingTelemetry",
    "SEARCH_COMPLETED",
    "Telemetry",
    "TelemetryEvent",
    "USER_DELETED",
]
