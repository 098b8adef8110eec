"""Schedule store backed by a SQLite file."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import closing
from pathlib import Path

from loguru import logger

from scalecron.errors import PersistenceError
from scalecron.store.base import StoredSchedule

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schedules (
    job_id INTEGER PRIMARY KEY,
    service_name TEXT NOT NULL,
    service_type TEXT NOT NULL,
    action TEXT NOT NULL,
    cron_spec TEXT NOT NULL
)
"""


class SqliteScheduleStore:
    """One row per schedule in the ``schedules`` table, keyed by job handle."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._initialized = False

    def __repr__(self) -> str:
        return f"SqliteScheduleStore({str(self.path)!r})"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=10)
        if not self._initialized:
            conn.execute(_CREATE_TABLE_SQL)
            conn.commit()
            self._initialized = True
            logger.debug("Schedules table checked/created in {}", self.path)
        return conn

    def _ensure_parent(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"cannot create directory for {self.path}: {e}") from e

    def insert_schedule(self, row: StoredSchedule) -> None:
        with self._lock:
            self._ensure_parent()
            try:
                with closing(self._connect()) as conn, conn:
                    conn.execute(
                        "INSERT INTO schedules (job_id, service_name, service_type, action, cron_spec) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (
                            row.job_handle,
                            row.service_name,
                            row.service_type,
                            row.action,
                            row.cron_expression,
                        ),
                    )
            except sqlite3.Error as e:
                raise PersistenceError(f"failed to save schedule {row.job_handle}: {e}") from e

    def delete_schedule(self, job_handle: int) -> bool:
        with self._lock:
            self._ensure_parent()
            try:
                with closing(self._connect()) as conn, conn:
                    cursor = conn.execute("DELETE FROM schedules WHERE job_id = ?", (job_handle,))
                    return cursor.rowcount > 0
            except sqlite3.Error as e:
                raise PersistenceError(f"failed to delete schedule {job_handle}: {e}") from e

    def list_schedules(self) -> list[StoredSchedule]:
        with self._lock:
            self._ensure_parent()
            try:
                with closing(self._connect()) as conn:
                    cursor = conn.execute(
                        "SELECT job_id, service_name, service_type, action, cron_spec "
                        "FROM schedules ORDER BY job_id"
                    )
                    return [
                        StoredSchedule(
                            job_handle=int(job_id),
                            service_name=service_name,
                            service_type=service_type,
                            action=action,
                            cron_expression=cron_spec,
                        )
                        for job_id, service_name, service_type, action, cron_spec in cursor.fetchall()
                    ]
            except sqlite3.Error as e:
                raise PersistenceError(f"failed to read schedules from {self.path}: {e}") from e
