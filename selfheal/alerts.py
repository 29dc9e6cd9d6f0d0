import copy
import itertools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .models import Alert

logger = logging.getLogger(__name__)

AlertListener = Callable[[Alert], None]


class AlertStore:
    """
    Append-only alert log. Alerts are never deleted; the only transitions are
    acknowledge and resolve, both idempotent. resolved_at is written once.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._alerts: Dict[int, Alert] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        # Held across a change and its listener calls so writes reach listeners in order
        self._write_lock = threading.RLock()
        self._listeners: List[AlertListener] = []

    def add_listener(self, listener: AlertListener):
        self._listeners.append(listener)

    def _notify(self, alert: Alert):
        for listener in self._listeners:
            try:
                listener(alert)
            except Exception as e:
                logger.error(f"Alert listener failed for alert {alert.id}: {e}")

    def raise_alert(self, alert: Alert) -> Alert:
        with self._write_lock:
            with self._lock:
                alert = copy.deepcopy(alert)
                alert.id = next(self._ids)
                alert.acknowledged = False
                alert.resolved = False
                alert.resolved_at = None
                self._alerts[alert.id] = alert
                snapshot = copy.deepcopy(alert)
            logger.warning(f"Alert #{snapshot.id} raised [{snapshot.severity.value}] "
                           f"{snapshot.title}: {snapshot.message}")
            self._notify(snapshot)
        return snapshot

    def acknowledge(self, alert_id: int) -> Optional[Alert]:
        with self._write_lock:
            with self._lock:
                alert = self._alerts.get(alert_id)
                if alert is None:
                    return None
                changed = not alert.acknowledged
                if changed:
                    alert.acknowledged = True
                    alert.acknowledged_at = self.clock()
                snapshot = copy.deepcopy(alert)
            if changed:
                logger.info(f"Alert #{alert_id} acknowledged")
                self._notify(snapshot)
        return snapshot

    def resolve(self, alert_id: int) -> Optional[Alert]:
        with self._write_lock:
            with self._lock:
                alert = self._alerts.get(alert_id)
                if alert is None:
                    return None
                changed = not alert.resolved
                if changed:
                    alert.resolved = True
                    alert.resolved_at = self.clock()
                snapshot = copy.deepcopy(alert)
            if changed:
                logger.info(f"Alert #{alert_id} resolved")
                self._notify(snapshot)
        return snapshot

    def get(self, alert_id: int) -> Optional[Alert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return copy.deepcopy(alert) if alert else None

    def all_alerts(self) -> List[Alert]:
        """Newest first."""
        with self._lock:
            return [copy.deepcopy(a) for a in reversed(list(self._alerts.values()))]

    def active_alerts(self) -> List[Alert]:
        return [a for a in self.all_alerts() if not a.resolved]

    def critical_active(self) -> List[Alert]:
        return [a for a in self.active_alerts() if a.severity.is_critical]
