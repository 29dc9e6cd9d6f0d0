import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional


def _env_flag(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in ['1', 'true', 'on', 'yes']


# 'dev' always runs the dry-run executor, 'prod' the local one
ENVIRONMENT = os.environ.get('SELFHEAL_ENV', 'dev')

# Global switch for routing rule-raised alerts into recovery.
# Critical error events are recovered regardless.
AUTO_REMEDIATE_ENABLED = _env_flag('SELFHEAL_AUTO_REMEDIATE', False)

TICK_INTERVAL_SECONDS = int(os.environ.get('SELFHEAL_TICK_SECONDS', 30))
SAMPLE_WINDOW = 20
HEALTH_WINDOW = 20
HISTORY_LIMIT = 20
ERROR_LOG_LIMIT = 50
TIMEOUT_SAFETY_FACTOR = 2.0
MAX_RECOVERY_WORKERS = 8

DB_PATH = os.environ.get('SELFHEAL_DB_PATH', 'selfheal.db')
LOG_FILE = os.environ.get('SELFHEAL_LOG_FILE')
LOG_LEVEL = os.environ.get('SELFHEAL_LOG_LEVEL', 'INFO')

TRACKED_COMPONENTS = ['application', 'database', 'network']

# Shell commands the local executor runs per recovery action.
# memory-cleanup needs none, it runs in-process.
RECOVERY_COMMANDS: Dict[str, str] = {
    'cache-clear': '',
    'service-restart': '',
    'database-reconnect': '',
    'failover-switch': '',
}


@dataclass
class EngineConfig:
    environment: str = 'dev'
    auto_remediate: bool = False
    tick_interval_seconds: int = 30
    sample_window: int = 20
    health_window: int = 20
    history_limit: int = 20
    error_log_limit: int = 50
    timeout_safety_factor: float = 2.0
    max_recovery_workers: int = 8
    db_path: Optional[str] = None
    tracked_components: List[str] = field(default_factory=lambda: list(TRACKED_COMPONENTS))
    recovery_commands: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_module(cls, module=None) -> 'EngineConfig':
        """Snapshot the upper-case settings of a config module (this one by default)."""
        module = module or sys.modules[__name__]
        return cls(
            environment=getattr(module, 'ENVIRONMENT', 'dev'),
            auto_remediate=getattr(module, 'AUTO_REMEDIATE_ENABLED', False),
            tick_interval_seconds=getattr(module, 'TICK_INTERVAL_SECONDS', 30),
            sample_window=getattr(module, 'SAMPLE_WINDOW', 20),
            health_window=getattr(module, 'HEALTH_WINDOW', 20),
            history_limit=getattr(module, 'HISTORY_LIMIT', 20),
            error_log_limit=getattr(module, 'ERROR_LOG_LIMIT', 50),
            timeout_safety_factor=getattr(module, 'TIMEOUT_SAFETY_FACTOR', 2.0),
            max_recovery_workers=getattr(module, 'MAX_RECOVERY_WORKERS', 8),
            db_path=getattr(module, 'DB_PATH', None),
            tracked_components=list(getattr(module, 'TRACKED_COMPONENTS', TRACKED_COMPONENTS)),
            recovery_commands=dict(getattr(module, 'RECOVERY_COMMANDS', {})),
        )
