import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .error_handling import ActionExecutionError
from .executor_base import ExecutorBase
from .models import ErrorType

ActionResult = Tuple[bool, str, Dict[str, Any]]

_ALL_FALLBACK = frozenset({ErrorType.AUTH, ErrorType.PERFORMANCE})

# Error types with no dedicated mapping (auth, performance) fall back to
# every automated action.
DEFAULT_APPLICABILITY: Dict[str, FrozenSet[ErrorType]] = {
    'cache-clear': frozenset({ErrorType.CLIENT}) | _ALL_FALLBACK,
    'service-restart': frozenset({ErrorType.SERVER, ErrorType.DATABASE, ErrorType.NETWORK}) | _ALL_FALLBACK,
    'database-reconnect': frozenset({ErrorType.DATABASE, ErrorType.SERVER}) | _ALL_FALLBACK,
    'memory-cleanup': frozenset({ErrorType.CLIENT}) | _ALL_FALLBACK,
    'failover-switch': frozenset({ErrorType.NETWORK, ErrorType.SERVER}),
}


@dataclass
class RecoveryAction:
    id: str
    name: str
    automated: bool
    estimated_seconds: float
    success_rate: float  # historical, informational only
    applicability: FrozenSet[ErrorType] = field(default_factory=frozenset)
    description: str = ''
    handler: Optional[Callable[[dict], Any]] = field(default=None, repr=False, compare=False)

    def applies_to(self, error_type: ErrorType) -> bool:
        return error_type in self.applicability

    def execute(self, issue: Optional[dict] = None) -> ActionResult:
        """Run the side effect. Handlers may return a bare bool or (success, output, extra)."""
        if self.handler is None:
            raise ActionExecutionError(f"No handler bound for action {self.id}")
        result = self.handler(issue or {})
        if isinstance(result, tuple):
            success, output, extra = result
            return bool(success), output or '', dict(extra or {})
        return bool(result), '', {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'automated': self.automated,
            'estimated_seconds': self.estimated_seconds,
            'success_rate': self.success_rate,
            'applicability': sorted(t.value for t in self.applicability),
        }


def default_actions(executor: ExecutorBase) -> List[RecoveryAction]:
    def bind(action_id):
        return functools.partial(executor.execute_action, action_id)

    return [
        RecoveryAction(
            id='cache-clear', name='Clear Cache', automated=True,
            estimated_seconds=5, success_rate=85,
            applicability=DEFAULT_APPLICABILITY['cache-clear'],
            description='Clear application cache and reload critical data',
            handler=bind('cache-clear'),
        ),
        RecoveryAction(
            id='service-restart', name='Restart Services', automated=True,
            estimated_seconds=10, success_rate=90,
            applicability=DEFAULT_APPLICABILITY['service-restart'],
            description='Restart critical background services',
            handler=bind('service-restart'),
        ),
        RecoveryAction(
            id='database-reconnect', name='Database Reconnection', automated=True,
            estimated_seconds=8, success_rate=95,
            applicability=DEFAULT_APPLICABILITY['database-reconnect'],
            description='Re-establish database connections',
            handler=bind('database-reconnect'),
        ),
        RecoveryAction(
            id='memory-cleanup', name='Memory Cleanup', automated=True,
            estimated_seconds=3, success_rate=75,
            applicability=DEFAULT_APPLICABILITY['memory-cleanup'],
            description='Free up memory and optimize performance',
            handler=bind('memory-cleanup'),
        ),
        RecoveryAction(
            id='failover-switch', name='Failover Switch', automated=False,
            estimated_seconds=30, success_rate=98,
            applicability=DEFAULT_APPLICABILITY['failover-switch'],
            description='Switch to backup systems and redundant services',
            handler=bind('failover-switch'),
        ),
    ]


class RecoveryActionRegistry:
    """Static catalog. Lookup order is declaration order, never success rate."""

    def __init__(self, actions: Iterable[RecoveryAction]):
        self._actions: List[RecoveryAction] = []
        for action in actions:
            if self.get(action.id) is not None:
                raise ValueError(f"Duplicate recovery action id: {action.id}")
            self._actions.append(action)

    @classmethod
    def default(cls, executor: ExecutorBase) -> 'RecoveryActionRegistry':
        return cls(default_actions(executor))

    def get(self, action_id: str) -> Optional[RecoveryAction]:
        for action in self._actions:
            if action.id == action_id:
                return action
        return None

    def actions(self) -> List[RecoveryAction]:
        return list(self._actions)

    def applicable_actions(self, error_type: ErrorType) -> List[RecoveryAction]:
        return [a for a in self._actions if a.applies_to(error_type)]
