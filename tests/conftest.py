from __future__ import annotations

import pytest

from helpers import Clock

from selfheal.alerts import AlertStore
from selfheal.history import RecoveryHistoryLog
from selfheal.incidents import ErrorEventLog
from selfheal.orchestrator import RecoveryOrchestrator
from selfheal.registry import RecoveryActionRegistry


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def build_orchestrator(clock):
    created = []

    def build(actions, **kwargs):
        store = AlertStore(clock=clock)
        errors = ErrorEventLog(clock=clock)
        history = RecoveryHistoryLog(limit=kwargs.pop('history_limit', 20))
        orch = RecoveryOrchestrator(RecoveryActionRegistry(actions), store, errors, history,
                                    clock=clock, **kwargs)
        created.append(orch)
        return orch, store, errors, history

    yield build
    for orch in created:
        orch.shutdown(wait=False)
