import gc
import logging
import shlex
import subprocess
from typing import Any, Dict, Optional, Tuple

from selfheal.error_handling import ActionTimeoutError
from selfheal.executor_base import ExecutorBase

logger = logging.getLogger(__name__)


class LocalExecutor(ExecutorBase):
    """
    Production executor. Each action id maps to a shell command from
    RECOVERY_COMMANDS; memory-cleanup runs in-process.
    """

    def __init__(self, commands: Dict[str, str], timeout: int = 60):
        self.commands = dict(commands)
        self.timeout = timeout

    def _run_command(self, command: str, timeout: Optional[float] = None) -> Tuple[bool, str]:
        """
        Helper to run a configured command safely (no shell).
        The process is killed once `timeout` (default: self.timeout) expires.
        """
        timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        try:
            result = subprocess.run(
                shlex.split(command),
                capture_output=True,
                text=True,
                timeout=timeout
            )
            success = (result.returncode == 0)
            output = result.stdout + "\n" + result.stderr
            return success, output.strip()
        except subprocess.TimeoutExpired:
            raise ActionTimeoutError(f"Execution timed out after {timeout:g}s.")
        except (OSError, ValueError) as e:
            return False, f"Execution failed: {str(e)}"

    def execute_action(self, action_id: str, issue: dict) -> Tuple[bool, str, Dict[str, Any]]:
        extra = {}

        if action_id == 'memory-cleanup':
            collected = gc.collect()
            extra['objects_collected'] = collected
            return True, f"Garbage collection freed {collected} objects.", extra

        command = self.commands.get(action_id)
        if command is None:
            return False, f"Unknown action type: {action_id}", extra
        if not command.strip():
            return False, f"No command configured for {action_id}.", extra

        success, output = self._run_command(command, issue.get('timeout'))
        extra['command'] = command
        logger.info(f"{action_id} exited {'ok' if success else 'with failure'}: {output[:200]}")
        return success, output, extra
