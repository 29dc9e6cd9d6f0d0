import threading
from collections import deque
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import ComponentHealth, HealthStatus, SampleReading, SystemMetricSample

# component -> (error_rate %, latency ms) extracted from a sample
Extractor = Callable[[SystemMetricSample], Tuple[float, float]]

DEFAULT_EXTRACTORS: Dict[str, Extractor] = {
    'application': lambda s: (s.application.error_rate, s.application.response_time_ms),
    'database': lambda s: (s.database.error_rate, s.database.query_time_ms),
    'network': lambda s: (0.0, s.network.latency_ms),
}


def classify(error_rate: float, avg_latency_ms: float, uptime: float) -> HealthStatus:
    if error_rate > 5 or avg_latency_ms > 100 or uptime < 98:
        return HealthStatus.CRITICAL
    if error_rate > 2 or avg_latency_ms > 75 or uptime < 99:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


class ComponentHealthTracker:
    """
    Fixed-window health per component.

    Every tick appends one observation per component. Uptime is the share of
    ticks in the window where the component was observed up; error rate and
    latency are averaged over the up ticks only. Readers get an immutable
    snapshot that is swapped in whole after each update, so polling never
    waits on the sampling thread.
    """

    def __init__(self, components: Optional[Iterable[str]] = None, window: int = 20,
                 extractors: Optional[Dict[str, Extractor]] = None):
        self.extractors = dict(extractors if extractors is not None else DEFAULT_EXTRACTORS)
        names = list(components) if components is not None else list(self.extractors)
        self._window = window
        self._observations: Dict[str, deque] = {name: deque(maxlen=window) for name in names}
        self._lock = threading.Lock()
        self._snapshot: Dict[str, ComponentHealth] = {
            name: ComponentHealth(name, 100.0, 0.0, 0.0, HealthStatus.HEALTHY) for name in names
        }

    def update(self, reading: SampleReading, now: Optional[float] = None):
        """Fold one sampler reading into every tracked component."""
        sample = reading.sample
        if now is None and sample is not None:
            now = sample.timestamp
        with self._lock:
            for name in self._observations:
                extract = self.extractors.get(name)
                if reading.stale or sample is None or extract is None:
                    self._observations[name].append((False, None, None))
                else:
                    error_rate, latency = extract(sample)
                    self._observations[name].append((True, float(error_rate), float(latency)))
            self._publish(now)

    def record(self, component: str, up: bool, error_rate: float = 0.0,
               latency_ms: float = 0.0, now: Optional[float] = None):
        """Direct observation from an external check."""
        with self._lock:
            obs = self._observations.setdefault(component, deque(maxlen=self._window))
            obs.append((up, float(error_rate), float(latency_ms)) if up else (False, None, None))
            self._publish(now)

    def _publish(self, now: Optional[float]):
        snapshot = {}
        for name, obs in self._observations.items():
            snapshot[name] = self._compute(name, obs, now)
        self._snapshot = snapshot

    @staticmethod
    def _compute(name: str, obs: deque, now: Optional[float]) -> ComponentHealth:
        if not obs:
            return ComponentHealth(name, 100.0, 0.0, 0.0, HealthStatus.HEALTHY, now)
        up = [o for o in obs if o[0]]
        uptime = 100.0 * len(up) / len(obs)
        error_rate = sum(o[1] for o in up) / len(up) if up else 0.0
        latency = sum(o[2] for o in up) / len(up) if up else 0.0
        return ComponentHealth(name, uptime, error_rate, latency,
                               classify(error_rate, latency, uptime), now)

    def snapshot(self) -> List[ComponentHealth]:
        return list(self._snapshot.values())

    def get(self, component: str) -> Optional[ComponentHealth]:
        return self._snapshot.get(component)

    def overall_uptime(self) -> float:
        snap = self.snapshot()
        if not snap:
            return 100.0
        return sum(h.uptime for h in snap) / len(snap)
