"""
Audit Sinks
===========

Destinations for audit events. A sink only has to implement write();
the AuditService handles dispatch and failures.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import AuditEvent, AuditEventType, AuditStatus

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Base class for audit destinations."""

    @abstractmethod
    def write(self, event: AuditEvent):
        """Record one event."""
        pass


class LoggingAuditSink(AuditSink):
    """
    Writes events as JSON lines through the standard logging module.

    Failures and rejections go out at WARNING, everything else at INFO.
    """

    def __init__(self, logger_name: str = "tenantsql.audit"):
        self._logger = logging.getLogger(logger_name)

    def write(self, event: AuditEvent):
        payload = json.dumps(event.model_dump(mode='json'), sort_keys=True)
        if event.status != AuditStatus.SUCCESS or event.event_type == AuditEventType.TEMPLATE_REJECTED:
            self._logger.warning(f"AUDIT {payload}")
        else:
            self._logger.info(f"AUDIT {payload}")


class InMemoryAuditSink(AuditSink):
    """Keeps events in a list; used by tests and for inspection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[AuditEvent] = []

    def write(self, event: AuditEvent):
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def last(self, event_type: Optional[AuditEventType] = None) -> Optional[AuditEvent]:
        matching = self.of_type(event_type) if event_type else self.events
        return matching[-1] if matching else None

    def clear(self):
        with self._lock:
            self._events.clear()
