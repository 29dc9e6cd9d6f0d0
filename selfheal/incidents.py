import copy
import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import Callable, List, Optional

from .models import ErrorContext, ErrorEvent, ErrorSeverity, ErrorType

logger = logging.getLogger(__name__)


class ErrorEventLog:
    """Bounded log of observed faults; oldest events fall off first."""

    def __init__(self, limit: int = 50, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.clock = clock
        self._events: 'OrderedDict[str, ErrorEvent]' = OrderedDict()
        self._lock = threading.Lock()

    def detect(self, error_type: ErrorType, severity: ErrorSeverity = ErrorSeverity.MEDIUM,
               message: str = 'Unknown error occurred', component: Optional[str] = None,
               session_id: Optional[str] = None, stack: Optional[str] = None) -> ErrorEvent:
        event = ErrorEvent(
            id=uuid.uuid4().hex[:9],
            error_type=error_type,
            severity=severity,
            message=message,
            stack=stack,
            context=ErrorContext(
                component=component,
                session_id=session_id or uuid.uuid4().hex[:9],
                timestamp=self.clock(),
            ),
        )
        return self.add(event)

    def add(self, event: ErrorEvent) -> ErrorEvent:
        with self._lock:
            event = copy.deepcopy(event)
            if event.id is None:
                event.id = uuid.uuid4().hex[:9]
            if event.context.timestamp is None:
                event.context.timestamp = self.clock()
            self._events[event.id] = event
            while len(self._events) > self.limit:
                self._events.popitem(last=False)
            snapshot = copy.deepcopy(event)
        logger.warning(f"Error {snapshot.id} detected [{snapshot.error_type.value}/"
                       f"{snapshot.severity.value}] {snapshot.message}")
        return snapshot

    def record_attempt(self, error_id: str) -> Optional[ErrorEvent]:
        with self._lock:
            event = self._events.get(error_id)
            if event is None:
                return None
            event.resolution_attempts += 1
            return copy.deepcopy(event)

    def mark_resolved(self, error_id: str, auto: bool = False) -> Optional[ErrorEvent]:
        with self._lock:
            event = self._events.get(error_id)
            if event is None:
                return None
            if not event.resolved:
                event.resolved = True
                event.auto_resolved = auto
            return copy.deepcopy(event)

    def get(self, error_id: str) -> Optional[ErrorEvent]:
        with self._lock:
            event = self._events.get(error_id)
            return copy.deepcopy(event) if event else None

    def all_errors(self) -> List[ErrorEvent]:
        """Newest first."""
        with self._lock:
            return [copy.deepcopy(e) for e in reversed(list(self._events.values()))]

    def unresolved(self) -> List[ErrorEvent]:
        return [e for e in self.all_errors() if not e.resolved]
