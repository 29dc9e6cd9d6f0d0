import functools
import logging
import traceback
from enum import Enum
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(log_file: Optional[str] = None, level: str = 'INFO'):
    """
    Install the engine's log format on the root logger.
    Writes to `log_file` when given, otherwise to stderr.
    """
    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    return handler


class ErrorKind(Enum):
    METRICS_UNAVAILABLE = 'metrics_unavailable'
    RULE_RESOLUTION_MISS = 'rule_resolution_miss'
    ACTION_EXECUTION_FAILURE = 'action_execution_failure'
    ACTION_TIMEOUT = 'action_timeout'
    CHANNEL_DELIVERY_FAILURE = 'channel_delivery_failure'


def safe_execute(default_return=None, kind: Optional[ErrorKind] = None):
    """
    Decorator to wrap functions in a try/except block.
    Logs errors and returns a default value on failure.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                tag = f"[{kind.value}] " if kind else ""
                logger.error(f"{tag}Error in {func.__name__}: {str(e)}")
                logger.debug(traceback.format_exc())
                return default_return
        return wrapper
    return decorator


class AppError(Exception):
    """Base custom exception class."""
    pass


class MonitoringError(AppError):
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str = '', kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class MetricsUnavailableError(MonitoringError):
    kind = ErrorKind.METRICS_UNAVAILABLE


class ActionExecutionError(MonitoringError):
    kind = ErrorKind.ACTION_EXECUTION_FAILURE


class ActionTimeoutError(MonitoringError):
    kind = ErrorKind.ACTION_TIMEOUT


class ChannelDeliveryError(MonitoringError):
    kind = ErrorKind.CHANNEL_DELIVERY_FAILURE
