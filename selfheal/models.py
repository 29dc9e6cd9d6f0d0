from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .error_handling import ErrorKind


class Severity(Enum):
    INFO = 'info'
    WARNING = 'warning'
    CRITICAL = 'critical'
    EMERGENCY = 'emergency'

    @property
    def is_critical(self) -> bool:
        return self in (Severity.CRITICAL, Severity.EMERGENCY)


class ErrorType(Enum):
    CLIENT = 'client'
    SERVER = 'server'
    NETWORK = 'network'
    DATABASE = 'database'
    AUTH = 'auth'
    PERFORMANCE = 'performance'


class ErrorSeverity(Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class ChannelKind(Enum):
    EMAIL = 'email'
    SLACK = 'slack'
    WEBHOOK = 'webhook'
    SMS = 'sms'


class HealthStatus(Enum):
    HEALTHY = 'healthy'
    WARNING = 'warning'
    CRITICAL = 'critical'


class RuleState(Enum):
    ARMED = 'armed'
    COOLING = 'cooling'


class ExecutionStatus(Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    TIMEOUT = 'timeout'
    REJECTED = 'rejected'


def to_dict(obj) -> Any:
    """JSON-ready view of a model: enums become their values, sets sorted lists."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_dict(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(to_dict(k)): to_dict(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted(to_dict(v) for v in obj)
    if isinstance(obj, (list, tuple)):
        return [to_dict(v) for v in obj]
    return obj


@dataclass(frozen=True)
class NetworkMetrics:
    inbound: float = 0.0
    outbound: float = 0.0
    latency_ms: float = 0.0


@dataclass(frozen=True)
class DatabaseMetrics:
    connections: int = 0
    query_time_ms: float = 0.0
    error_rate: float = 0.0


@dataclass(frozen=True)
class ApplicationMetrics:
    response_time_ms: float = 0.0
    error_rate: float = 0.0
    throughput: float = 0.0
    active_users: int = 0


@dataclass(frozen=True)
class SystemMetricSample:
    timestamp: float
    cpu: float
    memory: float
    disk: float
    network: NetworkMetrics = field(default_factory=NetworkMetrics)
    database: DatabaseMetrics = field(default_factory=DatabaseMetrics)
    application: ApplicationMetrics = field(default_factory=ApplicationMetrics)


@dataclass(frozen=True)
class SampleReading:
    """What the sampler hands to dependents for one tick."""
    sample: Optional[SystemMetricSample]
    stale: bool = False


@dataclass
class AlertRule:
    id: str
    name: str
    metric_path: str  # e.g. 'cpu', 'application.response_time_ms'
    threshold: float
    severity: Severity
    comparator: str = '>'
    enabled: bool = True
    notify_channels: List[ChannelKind] = field(default_factory=list)
    cooldown_minutes: float = 5
    last_triggered_at: Optional[float] = None
    recovery_error_type: Optional[ErrorType] = None

    def state(self, now: float) -> RuleState:
        if self.last_triggered_at is not None and now - self.last_triggered_at < self.cooldown_minutes * 60:
            return RuleState.COOLING
        return RuleState.ARMED


@dataclass
class Alert:
    severity: Severity
    title: str
    message: str
    source: str
    created_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    acknowledged: bool = False
    acknowledged_at: Optional[float] = None
    resolved: bool = False
    resolved_at: Optional[float] = None
    id: Optional[int] = None


@dataclass
class ErrorContext:
    component: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: Optional[float] = None


@dataclass
class ErrorEvent:
    error_type: ErrorType
    severity: ErrorSeverity
    message: str
    context: ErrorContext = field(default_factory=ErrorContext)
    stack: Optional[str] = None
    resolved: bool = False
    resolution_attempts: int = 0
    auto_resolved: bool = False
    id: Optional[str] = None


@dataclass
class RecoveryExecutionRecord:
    action_id: str
    action_name: str
    triggered_by: str  # alert id, error id or 'manual'
    trigger_kind: str  # 'alert', 'error' or 'manual'
    status: ExecutionStatus
    duration_ms: int
    timestamp: float
    output: str = ''
    error_kind: Optional[ErrorKind] = None
    id: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        data = to_dict(self)
        data['success'] = self.success
        return data


@dataclass(frozen=True)
class ComponentHealth:
    component: str
    uptime: float
    error_rate: float
    avg_response_ms: float
    status: HealthStatus
    last_check: Optional[float] = None
