import copy
import logging
import operator
import re
import threading
from typing import List, Optional

from .error_handling import ErrorKind
from .models import Alert, AlertRule, ChannelKind, ErrorType, RuleState, Severity, SystemMetricSample

logger = logging.getLogger(__name__)

ALERT_SOURCE = 'monitoring-system'

COMPARATORS = {
    '>': operator.gt,
    '>=': operator.ge,
    '<': operator.lt,
    '<=': operator.le,
}

_CAMEL = re.compile(r'(?<!^)(?=[A-Z])')


def default_rules() -> List[AlertRule]:
    return [
        AlertRule(
            id='high-cpu', name='High CPU Usage', metric_path='cpu', threshold=85,
            severity=Severity.WARNING,
            notify_channels=[ChannelKind.EMAIL, ChannelKind.SLACK], cooldown_minutes=15,
        ),
        AlertRule(
            id='critical-cpu', name='Critical CPU Usage', metric_path='cpu', threshold=95,
            severity=Severity.CRITICAL,
            notify_channels=[ChannelKind.EMAIL, ChannelKind.SLACK, ChannelKind.SMS], cooldown_minutes=5,
            recovery_error_type=ErrorType.PERFORMANCE,
        ),
        AlertRule(
            id='high-memory', name='High Memory Usage', metric_path='memory', threshold=80,
            severity=Severity.WARNING,
            notify_channels=[ChannelKind.EMAIL, ChannelKind.SLACK], cooldown_minutes=15,
        ),
        AlertRule(
            id='slow-response', name='Slow Response Time', metric_path='application.response_time_ms',
            threshold=500, severity=Severity.WARNING,
            notify_channels=[ChannelKind.EMAIL], cooldown_minutes=10,
        ),
        AlertRule(
            id='high-error-rate', name='High Error Rate', metric_path='application.error_rate',
            threshold=5, severity=Severity.CRITICAL,
            notify_channels=[ChannelKind.EMAIL, ChannelKind.SLACK, ChannelKind.WEBHOOK], cooldown_minutes=5,
            recovery_error_type=ErrorType.SERVER,
        ),
        AlertRule(
            id='database-slow', name='Database Performance', metric_path='database.query_time_ms',
            threshold=1000, severity=Severity.WARNING,
            notify_channels=[ChannelKind.EMAIL, ChannelKind.SLACK], cooldown_minutes=10,
            recovery_error_type=ErrorType.DATABASE,
        ),
    ]


def resolve_metric(sample: SystemMetricSample, path: str) -> Optional[float]:
    """
    Walk a dotted path ('cpu', 'application.response_time_ms') through a sample.
    camelCase segments ('application.responseTimeMs') are accepted as well.
    Returns None when the path does not lead to a number.
    """
    value = sample
    for part in path.split('.'):
        if not part:
            return None
        name = _CAMEL.sub('_', part).lower()
        if not hasattr(value, name):
            return None
        value = getattr(value, name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class AlertRuleEngine:
    def __init__(self, rules: Optional[List[AlertRule]] = None):
        self._rules: List[AlertRule] = list(rules) if rules is not None else default_rules()
        self._lock = threading.Lock()

    def evaluate(self, sample: SystemMetricSample, now: Optional[float] = None) -> List[Alert]:
        """
        Check every enabled rule against one sample, in declaration order.
        Returns the alerts to raise; ids are assigned by the AlertStore.
        """
        if now is None:
            now = sample.timestamp
        alerts = []
        with self._lock:
            for rule in self._rules:
                if not rule.enabled:
                    continue

                current_value = resolve_metric(sample, rule.metric_path)
                if current_value is None:
                    logger.debug(f"[{ErrorKind.RULE_RESOLUTION_MISS.value}] Rule {rule.id}: "
                                 f"no value at '{rule.metric_path}'")
                    continue

                compare = COMPARATORS.get(rule.comparator)
                if compare is None:
                    logger.warning(f"Rule {rule.id} has unknown comparator {rule.comparator!r}")
                    continue

                if not compare(current_value, rule.threshold):
                    continue

                # Breach while cooling: no alert, cooldown stays anchored to the first trigger
                if rule.state(now) == RuleState.COOLING:
                    continue

                rule.last_triggered_at = now
                alerts.append(Alert(
                    severity=rule.severity,
                    title=rule.name,
                    message=f"{rule.metric_path} is {current_value:.1f} (threshold: {rule.threshold})",
                    source=ALERT_SOURCE,
                    created_at=now,
                    metadata={
                        'rule_id': rule.id,
                        'observed_value': current_value,
                        'threshold': rule.threshold,
                    },
                ))
        return alerts

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            for rule in self._rules:
                if rule.id == rule_id:
                    return copy.deepcopy(rule)
        return None

    def rules(self) -> List[AlertRule]:
        with self._lock:
            return copy.deepcopy(self._rules)

    def add_rule(self, rule: AlertRule):
        with self._lock:
            if any(r.id == rule.id for r in self._rules):
                raise ValueError(f"Duplicate rule id: {rule.id}")
            self._rules.append(rule)

    def toggle_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            for rule in self._rules:
                if rule.id == rule_id:
                    rule.enabled = not rule.enabled
                    logger.info(f"Rule {rule_id} {'enabled' if rule.enabled else 'disabled'}")
                    return copy.deepcopy(rule)
        return None
