import itertools
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeout
from concurrent.futures import wait as wait_futures
from typing import Callable, FrozenSet, List, Optional

from .alerts import AlertStore
from .error_handling import ActionTimeoutError, ErrorKind
from .health import ComponentHealthTracker
from .history import RecoveryHistoryLog
from .incidents import ErrorEventLog
from .models import (Alert, ErrorEvent, ErrorSeverity, ErrorType, ExecutionStatus,
                     RecoveryExecutionRecord, to_dict)
from .registry import RecoveryAction, RecoveryActionRegistry

logger = logging.getLogger(__name__)

MANUAL = 'manual'


class ActiveRecoverySet:
    """Ids of actions currently running. At most one run per id; different ids run in parallel."""

    def __init__(self):
        self._ids = set()
        self._lock = threading.Lock()

    def try_acquire(self, action_id: str) -> bool:
        with self._lock:
            if action_id in self._ids:
                return False
            self._ids.add(action_id)
            return True

    def release(self, action_id: str):
        with self._lock:
            self._ids.discard(action_id)

    def snapshot(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._ids)

    def __contains__(self, action_id) -> bool:
        with self._lock:
            return action_id in self._ids


class _SlotHandoff:
    """
    Decides who frees an action's slot when its supervisor gives up waiting:
    the supervisor if the handler already returned, otherwise the worker.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._finished = False
        self._detached = False

    def detach(self) -> bool:
        with self._lock:
            self._detached = not self._finished
            return self._detached

    def finish(self) -> bool:
        with self._lock:
            self._finished = True
            return self._detached


class RecoveryOrchestrator:
    """
    Picks recovery actions for errors and alerts, runs them off the caller's
    thread and records every outcome.

    Only critical error events recover automatically, and only automated
    actions ever run without a human asking. A failed or timed-out run is
    recorded and left at that: there is no automatic retry.
    """

    def __init__(self, registry: RecoveryActionRegistry, alert_store: AlertStore,
                 error_log: ErrorEventLog, history: RecoveryHistoryLog,
                 health: Optional[ComponentHealthTracker] = None,
                 timeout_safety_factor: float = 2.0, max_workers: int = 8,
                 clock: Callable[[], float] = time.time,
                 on_record: Optional[Callable[[RecoveryExecutionRecord], None]] = None):
        self.registry = registry
        self.alert_store = alert_store
        self.error_log = error_log
        self.history = history
        self.health = health
        self.timeout_safety_factor = timeout_safety_factor
        self.clock = clock
        self.on_record = on_record
        self.active = ActiveRecoverySet()
        self.recovered_count = 0

        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='recovery')
        self._action_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='recovery-action')
        self._record_ids = itertools.count(1)
        self._lock = threading.Lock()
        self._resolve_lock = threading.Lock()
        self._pending: List[Future] = []

    # Selection

    def handle_error(self, error: ErrorEvent) -> List[Future]:
        if error.severity != ErrorSeverity.CRITICAL:
            logger.debug(f"Error {error.id} is {error.severity.value}; recovery is manual only")
            return []
        return self._auto_recover(error.error_type, 'error', error.id, component=error.context.component)

    def handle_alert(self, alert: Alert, error_type: ErrorType) -> List[Future]:
        return self._auto_recover(error_type, 'alert', str(alert.id))

    def _auto_recover(self, error_type: ErrorType, trigger_kind: str, trigger_id: str,
                      component: Optional[str] = None) -> List[Future]:
        futures = []
        for action in self.registry.applicable_actions(error_type):
            if not action.automated:
                logger.info(f"{action.name} is available for manual execution ({trigger_kind} {trigger_id})")
                continue
            if not self.active.try_acquire(action.id):
                logger.info(f"{action.name} already running; skipped for {trigger_kind} {trigger_id}")
                continue
            futures.append(self._submit(action, trigger_kind, trigger_id, error_type, component, auto=True))
        return futures

    # Execution

    def execute_action(self, action_id: str, error_id: Optional[str] = None,
                       alert_id: Optional[int] = None) -> Future:
        """
        Manual run. Without a trigger nothing is resolved on success.
        A second call while the same action is running is rejected and recorded.
        """
        action = self.registry.get(action_id)
        if action is None:
            raise KeyError(action_id)

        if error_id is not None:
            trigger_kind, trigger_id = 'error', error_id
        elif alert_id is not None:
            trigger_kind, trigger_id = 'alert', str(alert_id)
        else:
            trigger_kind, trigger_id = MANUAL, MANUAL

        if not self.active.try_acquire(action.id):
            logger.warning(f"Rejected {action.name}: already running")
            record = self._record(action, trigger_kind, trigger_id, ExecutionStatus.REJECTED, 0,
                                  f"{action.name} is already running", None)
            done = Future()
            done.set_result(record)
            return done

        error_type = None
        component = None
        if trigger_kind == 'error':
            error = self.error_log.get(error_id)
            if error is not None:
                error_type = error.error_type
                component = error.context.component
        return self._submit(action, trigger_kind, trigger_id, error_type, component, auto=False)

    def _submit(self, action: RecoveryAction, trigger_kind: str, trigger_id: str,
                error_type: Optional[ErrorType], component: Optional[str], auto: bool) -> Future:
        # Caller already holds the action's slot in the active set
        try:
            future = self._pool.submit(self._run, action, trigger_kind, trigger_id,
                                       error_type, component, auto)
        except RuntimeError:
            self.active.release(action.id)
            raise
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _issue(self, action: RecoveryAction, trigger_kind: str, trigger_id: str,
               error_type: Optional[ErrorType], component: Optional[str]) -> dict:
        issue = {'action_id': action.id, 'trigger_kind': trigger_kind, 'triggered_by': trigger_id}
        if error_type is not None:
            issue['error_type'] = error_type.value
        if component:
            issue['component'] = component
            if self.health is not None:
                health = self.health.get(component)
                if health is not None:
                    issue['component_health'] = to_dict(health)
        return issue

    def _run(self, action: RecoveryAction, trigger_kind: str, trigger_id: str,
             error_type: Optional[ErrorType], component: Optional[str], auto: bool) -> RecoveryExecutionRecord:
        release_now = True
        try:
            if trigger_kind == 'error':
                self.error_log.record_attempt(trigger_id)

            logger.info(f"Starting {action.name} ({trigger_kind} {trigger_id})")
            budget = action.estimated_seconds * self.timeout_safety_factor
            issue = self._issue(action, trigger_kind, trigger_id, error_type, component)
            if budget > 0:
                issue['timeout'] = budget
            started = time.monotonic()
            error_kind = None
            handoff = _SlotHandoff()
            try:
                running = self._action_pool.submit(self._execute, action, issue, handoff)
                success, output, _extra = running.result(timeout=budget if budget > 0 else None)
                status = ExecutionStatus.SUCCESS if success else ExecutionStatus.FAILED
                if not success:
                    error_kind = ErrorKind.ACTION_EXECUTION_FAILURE
            except FuturesTimeout:
                status = ExecutionStatus.TIMEOUT
                error_kind = ErrorKind.ACTION_TIMEOUT
                output = f"{action.name} exceeded {budget:.1f}s"
                if not running.cancel() and handoff.detach():
                    # Still executing: the worker frees the slot when the handler returns
                    release_now = False
                    with self._lock:
                        self._pending.append(running)
            except ActionTimeoutError as e:
                status = ExecutionStatus.TIMEOUT
                error_kind = ErrorKind.ACTION_TIMEOUT
                output = str(e)
            except Exception as e:
                status = ExecutionStatus.FAILED
                error_kind = getattr(e, 'kind', None) or ErrorKind.ACTION_EXECUTION_FAILURE
                output = f"{action.name} encountered an error: {e}"
            duration_ms = int((time.monotonic() - started) * 1000)

            record = self._record(action, trigger_kind, trigger_id, status, duration_ms, output, error_kind)
            if record.success:
                logger.info(f"{action.name} completed successfully in {duration_ms}ms")
                self._resolve_trigger(trigger_kind, trigger_id, auto)
            else:
                logger.warning(f"{action.name} {status.value}: {output}")
            return record
        finally:
            if release_now:
                self.active.release(action.id)

    def _execute(self, action: RecoveryAction, issue: dict, handoff: _SlotHandoff):
        try:
            return action.execute(issue)
        finally:
            if handoff.finish():
                self.active.release(action.id)

    def _resolve_trigger(self, trigger_kind: str, trigger_id: str, auto: bool):
        # Only the run that flips the trigger to resolved counts as a recovery
        with self._resolve_lock:
            if trigger_kind == 'error':
                before = self.error_log.get(trigger_id)
                if before is None or before.resolved:
                    return
                self.error_log.mark_resolved(trigger_id, auto=auto)
            elif trigger_kind == 'alert':
                before = self.alert_store.get(int(trigger_id))
                if before is None or before.resolved:
                    return
                self.alert_store.resolve(int(trigger_id))
            else:
                return
            self.recovered_count += 1

    def _record(self, action: RecoveryAction, trigger_kind: str, trigger_id: str,
                status: ExecutionStatus, duration_ms: int, output: str,
                error_kind: Optional[ErrorKind]) -> RecoveryExecutionRecord:
        record = RecoveryExecutionRecord(
            id=next(self._record_ids),
            action_id=action.id,
            action_name=action.name,
            triggered_by=trigger_id,
            trigger_kind=trigger_kind,
            status=status,
            duration_ms=duration_ms,
            timestamp=self.clock(),
            output=output or '',
            error_kind=error_kind,
        )
        self.history.append(record)
        if self.on_record is not None:
            try:
                self.on_record(record)
            except Exception as e:
                logger.error(f"Recording execution {record.id} failed: {e}")
        return record

    # Lifecycle

    def active_recoveries(self) -> List[str]:
        return sorted(self.active.snapshot())

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted execution has finished. False on timeout."""
        with self._lock:
            pending = list(self._pending)
        _done, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True):
        self._pool.shutdown(wait=wait)
        self._action_pool.shutdown(wait=False)
