from __future__ import annotations

import threading
from typing import Callable, List, Optional

from selfheal.models import (ApplicationMetrics, DatabaseMetrics, ErrorType, NetworkMetrics,
                             SystemMetricSample)
from selfheal.monitor_base import MetricSource
from selfheal.registry import RecoveryAction


def make_sample(ts: float = 0.0, cpu: float = 50.0, memory: float = 60.0, disk: float = 70.0,
                response_time_ms: float = 120.0, app_error_rate: float = 1.0,
                query_time_ms: float = 80.0, db_error_rate: float = 0.5,
                latency_ms: float = 20.0) -> SystemMetricSample:
    return SystemMetricSample(
        timestamp=ts,
        cpu=cpu,
        memory=memory,
        disk=disk,
        network=NetworkMetrics(inbound=100.0, outbound=80.0, latency_ms=latency_ms),
        database=DatabaseMetrics(connections=25, query_time_ms=query_time_ms, error_rate=db_error_rate),
        application=ApplicationMetrics(response_time_ms=response_time_ms, error_rate=app_error_rate,
                                       throughput=850.0, active_users=300),
    )


class FakeSource(MetricSource):
    """Plays back a script of samples; an Exception entry simulates an outage."""

    def __init__(self, script: List[object]):
        self.script = list(script)
        self.calls = 0

    def sample(self) -> SystemMetricSample:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_action(action_id: str, applicability=(ErrorType.CLIENT,), automated: bool = True,
                handler: Optional[Callable] = None, estimated_seconds: float = 5) -> RecoveryAction:
    return RecoveryAction(
        id=action_id,
        name=action_id.replace('-', ' ').title(),
        automated=automated,
        estimated_seconds=estimated_seconds,
        success_rate=90,
        applicability=frozenset(applicability),
        handler=handler or (lambda issue: True),
    )


class Gate:
    """Handler that blocks until released, for holding an action in flight."""

    def __init__(self, result=True):
        self.started = threading.Event()
        self.release = threading.Event()
        self.result = result
        self.calls = 0

    def __call__(self, issue):
        self.calls += 1
        self.started.set()
        self.release.wait(5)
        return self.result
