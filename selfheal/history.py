import threading
from collections import deque
from typing import List

from .models import ExecutionStatus, RecoveryExecutionRecord


class RecoveryHistoryLog:
    """Ring buffer of past executions; the oldest record is evicted first."""

    def __init__(self, limit: int = 20):
        self._records = deque(maxlen=limit)
        self._lock = threading.Lock()

    def append(self, record: RecoveryExecutionRecord):
        with self._lock:
            self._records.append(record)

    def records(self) -> List[RecoveryExecutionRecord]:
        """Newest first."""
        with self._lock:
            return list(reversed(self._records))

    def for_action(self, action_id: str) -> List[RecoveryExecutionRecord]:
        return [r for r in self.records() if r.action_id == action_id]

    def summary(self) -> dict:
        records = self.records()
        counts = {status: 0 for status in ExecutionStatus}
        for r in records:
            counts[r.status] += 1
        attempted = len(records) - counts[ExecutionStatus.REJECTED]
        return {
            'totalTests': len(records),
            'passed': counts[ExecutionStatus.SUCCESS],
            'failed': counts[ExecutionStatus.FAILED],
            'timeouts': counts[ExecutionStatus.TIMEOUT],
            'rejected': counts[ExecutionStatus.REJECTED],
            'successRate': (100.0 * counts[ExecutionStatus.SUCCESS] / attempted) if attempted else 0.0,
        }

    def __len__(self):
        with self._lock:
            return len(self._records)
