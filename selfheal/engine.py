import datetime
import json
import logging
import threading
import time
import traceback
from typing import Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .alerts import AlertStore
from .config import EngineConfig
from .error_handling import ErrorKind
from .executor_base import ExecutorBase, get_executor
from .health import ComponentHealthTracker
from .history import RecoveryHistoryLog
from .incidents import ErrorEventLog
from .logging_db import DatabaseManager
from .models import (Alert, AlertRule, ErrorEvent, ErrorSeverity, ErrorType, HealthStatus,
                     Severity, SystemMetricSample, to_dict)
from .monitor_base import MetricSource
from .notifications import LoggingNotifier, NotifierBase, dispatch
from .orchestrator import RecoveryOrchestrator
from .registry import RecoveryActionRegistry
from .rules import ALERT_SOURCE, AlertRuleEngine
from .sampler import MetricSampler

logger = logging.getLogger(__name__)

TICK_JOB_ID = 'monitoring-tick'
TICK_COMPONENT = 'monitoring-tick'
TRUTHY = ['1', 'true', 'on', 'yes']


class MonitoringEngine:
    """
    Wires sampling, health, alerting and recovery together and drives them
    from one periodic job.

    Each tick pulls one sample, folds it into component health, evaluates
    the alert rules and raises what fired. Recovery runs on the
    orchestrator's workers, so a tick never waits for an action to finish.
    Pausing stops new ticks only; actions already running complete and are
    recorded.
    """

    def __init__(self, config: EngineConfig, source: MetricSource,
                 executor: Optional[ExecutorBase] = None,
                 notifier: Optional[NotifierBase] = None,
                 rules: Optional[List[AlertRule]] = None,
                 registry: Optional[RecoveryActionRegistry] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.clock = clock
        self.notifier = notifier or LoggingNotifier()

        self.db: Optional[DatabaseManager] = None
        if config.db_path:
            self.db = DatabaseManager(config.db_path)
            self.db.init_db()
        self._settings = {'auto_remediate': str(config.auto_remediate).lower()}

        self.sampler = MetricSampler(source, window=config.sample_window)
        self.health = ComponentHealthTracker(config.tracked_components, window=config.health_window)
        self.rule_engine = AlertRuleEngine(rules)
        self.alert_store = AlertStore(clock=clock)
        self.error_log = ErrorEventLog(limit=config.error_log_limit, clock=clock)
        self.history = RecoveryHistoryLog(limit=config.history_limit)
        if registry is None:
            executor = executor or get_executor(config.environment, config.recovery_commands)
            registry = RecoveryActionRegistry.default(executor)
        self.registry = registry
        self.orchestrator = RecoveryOrchestrator(
            registry, self.alert_store, self.error_log, self.history,
            health=self.health,
            timeout_safety_factor=config.timeout_safety_factor,
            max_workers=config.max_recovery_workers,
            clock=clock,
            on_record=self.db.log_execution if self.db else None,
        )
        if self.db:
            self.alert_store.add_listener(self.db.save_alert)

        self.is_monitoring = False
        self._scheduler: Optional[BackgroundScheduler] = None
        self._stale_alert_id: Optional[int] = None
        self._tick_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[EngineConfig] = None,
                    source: Optional[MetricSource] = None, **kwargs) -> 'MonitoringEngine':
        config = config or EngineConfig.from_module()
        if source is None:
            from .platforms.psutil_monitor import PsutilMetricSource
            source = PsutilMetricSource()
        return cls(config, source, **kwargs)

    # Lifecycle

    def start(self):
        if self._scheduler is not None:
            logger.warning("Monitoring engine already started")
            return
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            func=self.tick, trigger='interval', seconds=self.config.tick_interval_seconds,
            id=TICK_JOB_ID, max_instances=1, coalesce=True,
            next_run_time=datetime.datetime.now(),
        )
        self._scheduler.start()
        self.is_monitoring = True
        logger.info(f"Monitoring started (every {self.config.tick_interval_seconds}s, "
                    f"environment={self.config.environment})")

    def pause(self):
        self.is_monitoring = False
        if self._scheduler is not None:
            self._scheduler.pause_job(TICK_JOB_ID)
        logger.info("Monitoring paused")

    def resume(self):
        if self._scheduler is None:
            self.start()
            return
        self._scheduler.resume_job(TICK_JOB_ID)
        self.is_monitoring = True
        logger.info("Monitoring resumed")

    def stop(self, wait: bool = True):
        """Stop ticking, then let in-flight recovery finish (when wait) and release workers."""
        self.is_monitoring = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
        self.orchestrator.shutdown(wait=wait)
        logger.info("Monitoring stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    # Periodic job

    def tick(self) -> List[Alert]:
        """One sampling cycle. Returns the alerts it raised; never raises itself."""
        with self._tick_lock:
            try:
                return self._tick()
            except Exception as e:
                logger.exception("Error in monitoring tick")
                self._report_tick_failure(e)
                return []

    def _report_tick_failure(self, error: Exception):
        try:
            self.report_error(ErrorType.SERVER, ErrorSeverity.HIGH, str(error),
                              component=TICK_COMPONENT, stack=traceback.format_exc())
        except Exception as e:
            logger.error(f"Could not record tick failure: {e}")

    def _tick(self) -> List[Alert]:
        reading = self.sampler.next()
        self.health.update(reading, now=self.clock())

        if reading.stale:
            self._surface_stale()
            return []
        self._clear_stale()

        sample = reading.sample
        if self.db:
            self.db.log_metrics(sample)

        raised = []
        for candidate in self.rule_engine.evaluate(sample):
            alert = self.alert_store.raise_alert(candidate)
            raised.append(alert)
            rule = self.rule_engine.get_rule(alert.metadata.get('rule_id'))
            if rule is None:
                continue
            dispatch(self.notifier, alert, rule.notify_channels)
            if rule.recovery_error_type is not None and alert.severity.is_critical:
                if self.auto_remediate_enabled():
                    self.orchestrator.handle_alert(alert, rule.recovery_error_type)
                else:
                    logger.info(f"Auto-remediation off; alert #{alert.id} left for manual recovery")
        return raised

    def _surface_stale(self):
        # One meta-alert per outage; rules are not re-run against the stale sample
        if self._stale_alert_id is not None:
            return
        alert = self.alert_store.raise_alert(Alert(
            severity=Severity.WARNING,
            title='Metrics Stale',
            message='Metric source unavailable; showing the last good sample',
            source=ALERT_SOURCE,
            created_at=self.clock(),
            metadata={'kind': ErrorKind.METRICS_UNAVAILABLE.value},
        ))
        self._stale_alert_id = alert.id

    def _clear_stale(self):
        if self._stale_alert_id is not None:
            self.alert_store.resolve(self._stale_alert_id)
            self._stale_alert_id = None

    # Settings

    def get_settings(self) -> dict:
        if self.db:
            return self.db.get_settings()
        return dict(self._settings)

    def update_setting(self, key: str, value):
        if self.db:
            self.db.update_setting(key, str(value))
        else:
            self._settings[key] = str(value)

    def auto_remediate_enabled(self) -> bool:
        """
        Whether rule-raised alerts are routed into recovery. In prod both the
        config flag and the runtime setting must be on; in dev the runtime
        setting alone decides.
        """
        runtime = str(self.get_settings().get('auto_remediate', 'false')).lower() in TRUTHY
        if self.config.environment == 'prod':
            return self.config.auto_remediate and runtime
        return runtime

    # Commands

    def report_error(self, error_type: ErrorType, severity: ErrorSeverity = ErrorSeverity.MEDIUM,
                     message: str = 'Unknown error occurred', component: Optional[str] = None,
                     session_id: Optional[str] = None, stack: Optional[str] = None) -> ErrorEvent:
        """Record an observed fault; critical ones start recovery right away."""
        event = self.error_log.detect(error_type, severity, message, component=component,
                                      session_id=session_id, stack=stack)
        self.orchestrator.handle_error(event)
        return event

    def acknowledge(self, alert_id: int) -> Optional[Alert]:
        return self.alert_store.acknowledge(alert_id)

    def resolve(self, alert_id: int) -> Optional[Alert]:
        return self.alert_store.resolve(alert_id)

    def execute_action(self, action_id: str, error_id: Optional[str] = None,
                       alert_id: Optional[int] = None):
        return self.orchestrator.execute_action(action_id, error_id=error_id, alert_id=alert_id)

    def toggle_rule(self, rule_id: str) -> Optional[AlertRule]:
        return self.rule_engine.toggle_rule(rule_id)

    # Queries

    def latest_sample(self) -> Optional[SystemMetricSample]:
        return self.sampler.latest

    def active_alerts(self) -> List[Alert]:
        return self.alert_store.active_alerts()

    def critical_active(self) -> List[Alert]:
        return self.alert_store.critical_active()

    def component_health(self):
        return self.health.snapshot()

    def recovery_history(self):
        return self.history.records()

    def summary(self) -> dict:
        components = self.health.snapshot()
        errors = self.error_log.all_errors()
        summary = self.history.summary()
        summary.update({
            'totalAlerts': len(self.alert_store.all_alerts()),
            'activeAlerts': len(self.alert_store.active_alerts()),
            'criticalAlerts': len(self.alert_store.critical_active()),
            'totalErrors': len(errors),
            'unresolvedErrors': len([e for e in errors if not e.resolved]),
            'recoveredErrors': self.orchestrator.recovered_count,
            'healthyComponents': len([h for h in components if h.status == HealthStatus.HEALTHY]),
            'totalComponents': len(components),
            'overallUptime': self.health.overall_uptime(),
            'activeRecoveries': self.orchestrator.active_recoveries(),
            'isMonitoring': self.is_monitoring,
        })
        return summary

    def export_report(self) -> dict:
        return {
            'timestamp': self.clock(),
            'summary': self.summary(),
            'componentHealth': [to_dict(h) for h in self.health.snapshot()],
            'alerts': [to_dict(a) for a in self.alert_store.all_alerts()],
            'errors': [to_dict(e) for e in self.error_log.all_errors()],
            'executionHistory': [r.to_dict() for r in self.history.records()],
        }

    def export_report_json(self, path: Optional[str] = None) -> str:
        text = json.dumps(self.export_report(), indent=2)
        if path:
            with open(path, 'w') as f:
                f.write(text)
            logger.info(f"Report exported to {path}")
        return text
