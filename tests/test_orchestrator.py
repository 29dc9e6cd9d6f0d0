from __future__ import annotations

import pytest
from helpers import Gate, make_action

from selfheal.error_handling import ActionExecutionError, ActionTimeoutError, ErrorKind
from selfheal.models import Alert, ErrorSeverity, ErrorType, ExecutionStatus, Severity


def _db_actions(handler=None):
    return [
        make_action('service-restart', (ErrorType.SERVER, ErrorType.DATABASE), handler=handler),
        make_action('database-reconnect', (ErrorType.DATABASE, ErrorType.SERVER), handler=handler),
        make_action('failover-switch', (ErrorType.SERVER,), automated=False),
    ]


def test_critical_database_error_recovers_automatically(build_orchestrator) -> None:
    orch, _store, errors, history = build_orchestrator(_db_actions())
    event = errors.detect(ErrorType.DATABASE, ErrorSeverity.CRITICAL, 'Connection pool exhausted')

    futures = orch.handle_error(event)
    records = [f.result(timeout=5) for f in futures]

    assert sorted(r.action_id for r in records) == ['database-reconnect', 'service-restart']
    assert all(r.status == ExecutionStatus.SUCCESS for r in records)
    assert all(r.trigger_kind == 'error' and r.triggered_by == event.id for r in records)
    assert len(history) == 2

    resolved = errors.get(event.id)
    assert resolved.resolved is True
    assert resolved.auto_resolved is True
    assert resolved.resolution_attempts == 2
    # two successful runs, one recovered error
    assert orch.recovered_count == 1


def test_non_critical_error_waits_for_a_human(build_orchestrator) -> None:
    orch, _store, errors, history = build_orchestrator(_db_actions())
    event = errors.detect(ErrorType.DATABASE, ErrorSeverity.HIGH, 'slow queries')

    assert orch.handle_error(event) == []
    assert len(history) == 0
    assert errors.get(event.id).resolved is False


def test_manual_only_actions_never_auto_run(build_orchestrator) -> None:
    calls = []
    actions = [make_action('failover-switch', (ErrorType.NETWORK,), automated=False,
                           handler=lambda issue: calls.append(issue) or True)]
    orch, _store, errors, history = build_orchestrator(actions)
    event = errors.detect(ErrorType.NETWORK, ErrorSeverity.CRITICAL, 'link down')

    assert orch.handle_error(event) == []
    assert calls == []
    assert len(history) == 0


def test_duplicate_manual_run_is_rejected(build_orchestrator) -> None:
    gate = Gate()
    orch, _store, _errors, history = build_orchestrator([make_action('cache-clear', handler=gate)])

    first = orch.execute_action('cache-clear')
    assert gate.started.wait(5)
    second = orch.execute_action('cache-clear')

    assert second.done()
    rejected = second.result()
    assert rejected.status == ExecutionStatus.REJECTED
    assert 'cache-clear' in orch.active_recoveries()

    gate.release.set()
    assert first.result(timeout=5).status == ExecutionStatus.SUCCESS
    assert gate.calls == 1
    assert sorted(r.status.value for r in history.records()) == ['rejected', 'success']
    assert orch.active_recoveries() == []


def test_auto_recovery_skips_action_already_running(build_orchestrator) -> None:
    gate = Gate()
    orch, _store, errors, history = build_orchestrator(
        [make_action('cache-clear', (ErrorType.CLIENT,), handler=gate)])
    orch.execute_action('cache-clear')
    assert gate.started.wait(5)

    event = errors.detect(ErrorType.CLIENT, ErrorSeverity.CRITICAL, 'bundle crashed')
    assert orch.handle_error(event) == []

    gate.release.set()
    assert orch.wait_idle(5)
    assert len(history) == 1


def test_timeout_is_recorded_without_retry(build_orchestrator) -> None:
    gate = Gate()
    orch, _store, errors, history = build_orchestrator(
        [make_action('cache-clear', handler=gate, estimated_seconds=0.05)])
    event = errors.detect(ErrorType.CLIENT, ErrorSeverity.CRITICAL, 'hung')
    try:
        record = orch.handle_error(event)[0].result(timeout=5)
    finally:
        gate.release.set()
    assert orch.wait_idle(5)

    assert record.status == ExecutionStatus.TIMEOUT
    assert record.error_kind == ErrorKind.ACTION_TIMEOUT
    assert gate.calls == 1
    assert len(history) == 1
    assert orch.active_recoveries() == []
    assert errors.get(event.id).resolved is False


def test_timed_out_action_keeps_its_slot_until_it_returns(build_orchestrator) -> None:
    gate = Gate()
    orch, _store, errors, history = build_orchestrator(
        [make_action('service-restart', (ErrorType.SERVER,), handler=gate, estimated_seconds=0.05)])
    first = errors.detect(ErrorType.SERVER, ErrorSeverity.CRITICAL, 'api hung')
    second = errors.detect(ErrorType.SERVER, ErrorSeverity.CRITICAL, 'api still hung')
    try:
        record = orch.handle_error(first)[0].result(timeout=5)
        assert record.status == ExecutionStatus.TIMEOUT
        assert orch.active_recoveries() == ['service-restart']
        assert orch.handle_error(second) == []
    finally:
        gate.release.set()

    assert orch.wait_idle(5)
    assert gate.calls == 1
    assert len(history) == 1
    assert orch.active_recoveries() == []


def test_queued_action_that_times_out_never_runs(build_orchestrator) -> None:
    gate = Gate()
    cleared = []
    orch, _store, _errors, history = build_orchestrator(
        [make_action('service-restart', handler=gate, estimated_seconds=0.05),
         make_action('cache-clear', handler=lambda issue: cleared.append(issue) or True,
                     estimated_seconds=0.05)],
        max_workers=1)
    try:
        hung = orch.execute_action('service-restart')
        assert gate.started.wait(5)
        queued = orch.execute_action('cache-clear')
        assert hung.result(timeout=5).status == ExecutionStatus.TIMEOUT
        assert queued.result(timeout=5).status == ExecutionStatus.TIMEOUT
    finally:
        gate.release.set()

    assert orch.wait_idle(5)
    assert cleared == []
    assert orch.active_recoveries() == []
    assert [r.action_id for r in history.records()] == ['cache-clear', 'service-restart']


def test_failed_action_leaves_error_unresolved(build_orchestrator) -> None:
    orch, _store, errors, _history = build_orchestrator(
        [make_action('cache-clear', handler=lambda issue: (False, 'cache locked', {}))])
    event = errors.detect(ErrorType.CLIENT, ErrorSeverity.CRITICAL, 'stale bundle')

    record = orch.handle_error(event)[0].result(timeout=5)

    assert record.status == ExecutionStatus.FAILED
    assert record.output == 'cache locked'
    assert record.error_kind == ErrorKind.ACTION_EXECUTION_FAILURE
    assert errors.get(event.id).resolved is False
    assert errors.get(event.id).resolution_attempts == 1
    assert orch.recovered_count == 0


def test_raising_handler_is_recorded_as_failure(build_orchestrator) -> None:
    def explode(issue):
        raise ActionExecutionError('restart script missing')

    orch, _store, errors, _history = build_orchestrator([make_action('cache-clear', handler=explode)])
    event = errors.detect(ErrorType.CLIENT, ErrorSeverity.CRITICAL, 'boom')

    record = orch.handle_error(event)[0].result(timeout=5)

    assert record.status == ExecutionStatus.FAILED
    assert 'restart script missing' in record.output
    assert record.error_kind == ErrorKind.ACTION_EXECUTION_FAILURE
    assert orch.active_recoveries() == []


def test_manual_run_against_alert_resolves_it(build_orchestrator) -> None:
    orch, store, _errors, _history = build_orchestrator([make_action('cache-clear')])
    alert = store.raise_alert(Alert(severity=Severity.CRITICAL, title='Critical CPU Usage',
                                    message='cpu is 99.0 (threshold: 95)',
                                    source='monitoring-system', created_at=0))

    record = orch.execute_action('cache-clear', alert_id=alert.id).result(timeout=5)

    assert record.trigger_kind == 'alert'
    assert record.triggered_by == str(alert.id)
    assert store.get(alert.id).resolved is True
    assert orch.recovered_count == 1


def test_manual_run_against_error_is_not_auto_resolved(build_orchestrator) -> None:
    orch, _store, errors, _history = build_orchestrator([make_action('cache-clear')])
    event = errors.detect(ErrorType.CLIENT, ErrorSeverity.LOW, 'cosmetic')

    orch.execute_action('cache-clear', error_id=event.id).result(timeout=5)

    resolved = errors.get(event.id)
    assert resolved.resolved is True
    assert resolved.auto_resolved is False


def test_manual_run_without_trigger_resolves_nothing(build_orchestrator) -> None:
    orch, _store, _errors, _history = build_orchestrator([make_action('cache-clear')])
    record = orch.execute_action('cache-clear').result(timeout=5)
    assert record.triggered_by == 'manual'
    assert record.success
    assert orch.recovered_count == 0


def test_unknown_action_raises(build_orchestrator) -> None:
    orch, *_ = build_orchestrator([make_action('cache-clear')])
    with pytest.raises(KeyError):
        orch.execute_action('nope')


def test_different_actions_run_concurrently(build_orchestrator) -> None:
    first, second = Gate(), Gate()
    orch, *_ = build_orchestrator([make_action('cache-clear', handler=first),
                                   make_action('memory-cleanup', handler=second)])
    orch.execute_action('cache-clear')
    orch.execute_action('memory-cleanup')
    try:
        assert first.started.wait(5)
        assert second.started.wait(5)
        assert orch.active_recoveries() == ['cache-clear', 'memory-cleanup']
    finally:
        first.release.set()
        second.release.set()
    assert orch.wait_idle(5)
    assert orch.active_recoveries() == []


def test_history_is_bounded(build_orchestrator) -> None:
    orch, _store, _errors, history = build_orchestrator([make_action('cache-clear')], history_limit=3)
    for _ in range(5):
        orch.execute_action('cache-clear').result(timeout=5)
    records = history.records()
    assert len(records) == 3
    assert [r.id for r in records] == [5, 4, 3]


def test_record_callback_failure_is_contained(build_orchestrator) -> None:
    def broken_sink(record):
        raise RuntimeError('disk full')

    orch, _store, _errors, history = build_orchestrator([make_action('cache-clear')],
                                                        on_record=broken_sink)
    assert orch.execute_action('cache-clear').result(timeout=5).success
    assert len(history) == 1


def test_issue_carries_component_health(build_orchestrator) -> None:
    from selfheal.health import ComponentHealthTracker

    seen = []
    tracker = ComponentHealthTracker(['database'])
    orch, _store, errors, _history = build_orchestrator(
        [make_action('database-reconnect', (ErrorType.DATABASE,),
                     handler=lambda issue: seen.append(issue) or True)],
        health=tracker)
    event = errors.detect(ErrorType.DATABASE, ErrorSeverity.CRITICAL, 'down', component='database')

    orch.handle_error(event)[0].result(timeout=5)

    assert seen[0]['component'] == 'database'
    assert seen[0]['error_type'] == 'database'
    assert seen[0]['component_health']['status'] == 'healthy'


def test_executor_timeout_is_recorded_as_timeout(build_orchestrator) -> None:
    def slow_command(issue):
        raise ActionTimeoutError('Execution timed out after 60s.')

    orch, *_ = build_orchestrator([make_action('cache-clear', handler=slow_command)])
    record = orch.execute_action('cache-clear').result(timeout=5)
    assert record.status == ExecutionStatus.TIMEOUT
    assert record.error_kind == ErrorKind.ACTION_TIMEOUT
    assert record.output == 'Execution timed out after 60s.'
