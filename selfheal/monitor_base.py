from abc import ABC, abstractmethod

from .models import SystemMetricSample


class MetricSource(ABC):
    @abstractmethod
    def sample(self) -> SystemMetricSample:
        """
        Collect and return one system metric sample.
        Raise (any exception) when the source is unavailable; the sampler
        treats that as MetricsUnavailable and reuses the previous sample.
        """
        pass
