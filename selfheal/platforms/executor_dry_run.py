import logging
from typing import Any, Dict, Tuple

from selfheal.executor_base import ExecutorBase

logger = logging.getLogger(__name__)

DRY_RUN_OUTPUT = {
    'cache-clear': "Would clear application caches and reload critical data.",
    'service-restart': "Would restart critical background services.",
    'database-reconnect': "Would drop and re-establish database connections.",
    'memory-cleanup': "Would run garbage collection and release cached buffers.",
    'failover-switch': "Would switch traffic to backup systems.",
}


class DryRunExecutor(ExecutorBase):
    def execute_action(self, action_id: str, issue: dict) -> Tuple[bool, str, Dict[str, Any]]:
        """
        Development executor.
        Logs what it would do without making system changes.
        """
        extra = {'dry_run': True}

        output = DRY_RUN_OUTPUT.get(action_id)
        if output is None:
            return False, f"Unknown action type: {action_id}", extra

        if issue.get('component'):
            extra['target_component'] = issue['component']
            output = f"{output} (component: {issue['component']})"

        logger.info(f"[dry-run] {action_id}: {output}")
        return True, output, extra
