import logging
import threading
from collections import deque
from typing import Optional, Tuple

from .error_handling import ErrorKind
from .models import SampleReading, SystemMetricSample
from .monitor_base import MetricSource

logger = logging.getLogger(__name__)


class MetricSampler:
    """Pulls one sample per tick and keeps a fixed rolling window for trend display."""

    def __init__(self, source: MetricSource, window: int = 20):
        self.source = source
        self._window = deque(maxlen=window)
        self._lock = threading.Lock()
        self._last: Optional[SystemMetricSample] = None
        self.stale = False

    def next(self) -> SampleReading:
        try:
            sample = self.source.sample()
        except Exception as e:
            logger.warning(f"[{ErrorKind.METRICS_UNAVAILABLE.value}] Metric source failed: {e}")
            self.stale = True
            return SampleReading(sample=self._last, stale=True)

        with self._lock:
            self._window.append(sample)
            self._last = sample
        self.stale = False
        return SampleReading(sample=sample, stale=False)

    @property
    def latest(self) -> Optional[SystemMetricSample]:
        return self._last

    def samples(self) -> Tuple[SystemMetricSample, ...]:
        with self._lock:
            return tuple(self._window)
