from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple


class ExecutorBase(ABC):
    @abstractmethod
    def execute_action(self, action_id: str, issue: dict) -> Tuple[bool, str, Dict[str, Any]]:
        """
        Execute a recovery action.

        Args:
            action_id (str): Catalog id of the action, e.g. 'cache-clear'.
            issue (dict): Details about the alert or error that triggered it;
                empty for manual runs.

        Returns:
            (success: bool, output: str, extra: dict)
        """
        pass


def get_executor(environment: str = 'dev', commands: Optional[Dict[str, str]] = None) -> 'ExecutorBase':
    if environment == 'prod':
        from .platforms.executor_local import LocalExecutor
        return LocalExecutor(commands or {})
    elif environment == 'dev':
        from .platforms.executor_dry_run import DryRunExecutor
        return DryRunExecutor()
    else:
        raise NotImplementedError(f"Unsupported environment: {environment}")
