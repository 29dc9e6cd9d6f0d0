import sqlite3
from pathlib import Path
from typing import Dict, List

from .models import Alert, RecoveryExecutionRecord, SystemMetricSample

SCHEMA_PATH = Path(__file__).with_name('schema.sql')


class DatabaseManager:
    """SQLite audit trail: metric history, alert lifecycle, executions and runtime settings."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        conn = self.get_connection()
        try:
            conn.executescript(SCHEMA_PATH.read_text())
            conn.commit()
        finally:
            conn.close()

    def log_metrics(self, sample: SystemMetricSample):
        conn = self.get_connection()
        try:
            conn.execute(
                '''INSERT INTO metrics (timestamp, cpu, memory, disk, network_latency_ms,
                       db_query_time_ms, db_error_rate, app_response_time_ms, app_error_rate)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                (
                    sample.timestamp, sample.cpu, sample.memory, sample.disk,
                    sample.network.latency_ms,
                    sample.database.query_time_ms, sample.database.error_rate,
                    sample.application.response_time_ms, sample.application.error_rate,
                )
            )
            conn.commit()
        finally:
            conn.close()

    def get_metrics_history(self, limit=60) -> List[dict]:
        """Oldest first, for charts."""
        conn = self.get_connection()
        try:
            cur = conn.execute("SELECT * FROM metrics ORDER BY id DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        finally:
            conn.close()
        return [dict(row) for row in reversed(rows)]

    def save_alert(self, alert: Alert):
        """Insert or update; the store's id is the primary key."""
        conn = self.get_connection()
        try:
            conn.execute(
                '''INSERT OR REPLACE INTO alerts (
                       id, severity, title, message, source, created_at, rule_id,
                       observed_value, threshold, acknowledged, acknowledged_at, resolved, resolved_at
                   )
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                (
                    alert.id, alert.severity.value, alert.title, alert.message, alert.source,
                    alert.created_at, alert.metadata.get('rule_id'),
                    alert.metadata.get('observed_value'), alert.metadata.get('threshold'),
                    int(alert.acknowledged), alert.acknowledged_at,
                    int(alert.resolved), alert.resolved_at,
                )
            )
            conn.commit()
        finally:
            conn.close()

    def get_recent_alerts(self, limit=100) -> List[dict]:
        conn = self.get_connection()
        try:
            cur = conn.execute("SELECT * FROM alerts ORDER BY id DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    def log_execution(self, record: RecoveryExecutionRecord) -> int:
        conn = self.get_connection()
        try:
            cur = conn.cursor()
            cur.execute(
                '''INSERT INTO executions (
                       record_id, action_id, action_name, triggered_by, trigger_kind,
                       status, duration_ms, timestamp, output, error_kind
                   )
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                (
                    record.id, record.action_id, record.action_name, record.triggered_by,
                    record.trigger_kind, record.status.value, record.duration_ms,
                    record.timestamp, record.output,
                    record.error_kind.value if record.error_kind else None,
                )
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def get_recent_executions(self, limit=50) -> List[dict]:
        conn = self.get_connection()
        try:
            cur = conn.execute("SELECT * FROM executions ORDER BY id DESC LIMIT ?", (limit,))
            rows = cur.fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    def get_settings(self) -> Dict[str, str]:
        conn = self.get_connection()
        try:
            cur = conn.execute("SELECT key, value FROM settings")
            rows = cur.fetchall()
        finally:
            conn.close()
        return {row['key']: row['value'] for row in rows}

    def update_setting(self, key: str, value: str):
        conn = self.get_connection()
        try:
            conn.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value)))
            conn.commit()
        finally:
            conn.close()
