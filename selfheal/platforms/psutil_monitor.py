import time
from typing import Callable, Optional, Tuple

import psutil

from selfheal.error_handling import ErrorKind, MetricsUnavailableError, safe_execute
from selfheal.models import (ApplicationMetrics, DatabaseMetrics, NetworkMetrics,
                             SystemMetricSample)
from selfheal.monitor_base import MetricSource


class PsutilMetricSource(MetricSource):
    """
    Host metrics from psutil. Database and application figures are not
    observable from the host; pass readers for them or they stay at zero.
    """

    def __init__(self, disk_path: str = '/', cpu_interval: float = 1,
                 database_reader: Optional[Callable[[], DatabaseMetrics]] = None,
                 application_reader: Optional[Callable[[], ApplicationMetrics]] = None):
        self.disk_path = disk_path
        self.cpu_interval = cpu_interval
        self.database_reader = database_reader
        self.application_reader = application_reader
        self._last_io: Optional[Tuple[float, int, int]] = None

    @safe_execute(default_return=NetworkMetrics(), kind=ErrorKind.METRICS_UNAVAILABLE)
    def _network(self) -> NetworkMetrics:
        io = psutil.net_io_counters()
        now = time.monotonic()
        inbound = outbound = 0.0
        if self._last_io is not None:
            then, recv, sent = self._last_io
            elapsed = max(now - then, 1e-6)
            # KB/s since the previous sample
            inbound = (io.bytes_recv - recv) / elapsed / 1024
            outbound = (io.bytes_sent - sent) / elapsed / 1024
        self._last_io = (now, io.bytes_recv, io.bytes_sent)
        return NetworkMetrics(inbound=inbound, outbound=outbound)

    def sample(self) -> SystemMetricSample:
        try:
            cpu_percent = psutil.cpu_percent(interval=self.cpu_interval)
            mem_percent = psutil.virtual_memory().percent
            disk_percent = psutil.disk_usage(self.disk_path).percent
        except (psutil.Error, OSError) as e:
            raise MetricsUnavailableError(f"psutil collection failed: {e}") from e

        return SystemMetricSample(
            timestamp=time.time(),
            cpu=cpu_percent,
            memory=mem_percent,
            disk=disk_percent,
            network=self._network(),
            database=self.database_reader() if self.database_reader else DatabaseMetrics(),
            application=self.application_reader() if self.application_reader else ApplicationMetrics(),
        )
