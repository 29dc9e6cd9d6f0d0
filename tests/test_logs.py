from __future__ import annotations

import types

from helpers import Clock

from selfheal.config import EngineConfig
from selfheal.error_handling import ErrorKind
from selfheal.history import RecoveryHistoryLog
from selfheal.incidents import ErrorEventLog
from selfheal.models import ErrorSeverity, ErrorType, ExecutionStatus, RecoveryExecutionRecord


def _record(status: ExecutionStatus, record_id: int = 1) -> RecoveryExecutionRecord:
    return RecoveryExecutionRecord(action_id='cache-clear', action_name='Clear Cache',
                                   triggered_by='manual', trigger_kind='manual', status=status,
                                   duration_ms=10, timestamp=0, id=record_id)


def test_history_summary_excludes_rejections_from_rate() -> None:
    history = RecoveryHistoryLog()
    for i, status in enumerate([ExecutionStatus.SUCCESS, ExecutionStatus.FAILED,
                                ExecutionStatus.TIMEOUT, ExecutionStatus.SUCCESS,
                                ExecutionStatus.REJECTED]):
        history.append(_record(status, i))

    summary = history.summary()
    assert summary == {'totalTests': 5, 'passed': 2, 'failed': 1, 'timeouts': 1,
                       'rejected': 1, 'successRate': 50.0}


def test_history_newest_first_and_per_action() -> None:
    history = RecoveryHistoryLog(limit=2)
    for i in range(3):
        history.append(_record(ExecutionStatus.SUCCESS, i))
    assert [r.id for r in history.records()] == [2, 1]
    assert len(history.for_action('cache-clear')) == 2
    assert history.for_action('failover-switch') == []


def test_record_to_dict() -> None:
    record = _record(ExecutionStatus.TIMEOUT)
    record.error_kind = ErrorKind.ACTION_TIMEOUT
    data = record.to_dict()
    assert data['status'] == 'timeout'
    assert data['error_kind'] == 'action_timeout'
    assert data['success'] is False


def test_error_log_is_bounded() -> None:
    log = ErrorEventLog(limit=3, clock=Clock(now=7))
    events = [log.detect(ErrorType.CLIENT, message=f"e{i}") for i in range(5)]

    assert [e.message for e in log.all_errors()] == ['e4', 'e3', 'e2']
    assert log.get(events[0].id) is None
    assert events[4].context.timestamp == 7
    assert events[4].severity == ErrorSeverity.MEDIUM


def test_error_resolution_is_write_once() -> None:
    log = ErrorEventLog()
    event = log.detect(ErrorType.SERVER, ErrorSeverity.CRITICAL, '500s')
    log.record_attempt(event.id)
    log.mark_resolved(event.id, auto=True)
    log.mark_resolved(event.id, auto=False)

    stored = log.get(event.id)
    assert stored.resolution_attempts == 1
    assert stored.auto_resolved is True
    assert log.unresolved() == []
    assert log.mark_resolved('missing') is None


def test_engine_config_from_module() -> None:
    module = types.SimpleNamespace(ENVIRONMENT='prod', AUTO_REMEDIATE_ENABLED=True,
                                   HISTORY_LIMIT=5, RECOVERY_COMMANDS={'cache-clear': 'true'})
    config = EngineConfig.from_module(module)
    assert config.environment == 'prod'
    assert config.auto_remediate is True
    assert config.history_limit == 5
    assert config.tick_interval_seconds == 30
    assert config.recovery_commands == {'cache-clear': 'true'}
    assert config.tracked_components == ['application', 'database', 'network']
