"""Reconciliation and gap-fill run history using SQLite."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class History:
    """Tracks reconciliation and gap-fill runs."""

    def __init__(self, db_path: str = "data/history.db") -> None:
        """Initialize history database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    success BOOLEAN NOT NULL,
                    period TEXT,
                    worklog_total INTEGER DEFAULT 0,
                    ledger_total INTEGER DEFAULT 0,
                    missing INTEGER DEFAULT 0,
                    missing_hours REAL DEFAULT 0,
                    created INTEGER DEFAULT 0,
                    failed INTEGER DEFAULT 0,
                    error TEXT,
                    duration_seconds REAL DEFAULT 0,
                    details TEXT
                )
                """
            )
            conn.commit()
            logger.debug(f"Initialized history database at {self.db_path}")

    def record_run(
        self,
        kind: str,
        success: bool,
        period: str = "",
        worklog_total: int = 0,
        ledger_total: int = 0,
        missing: int = 0,
        missing_hours: float = 0,
        created: int = 0,
        failed: int = 0,
        error: str = "",
        duration_seconds: float = 0,
        details: list[str] | None = None,
    ) -> int:
        """Record a run.

        Args:
            kind: ``reconcile`` or ``fill``
            success: Whether the run succeeded
            period: Reconciled period, e.g. ``2024-06-01..2024-06-30``
            worklog_total: Number of Tempo worklogs
            ledger_total: Number of Redmine time entries
            missing: Missing entries left after the run
            missing_hours: Hours left missing after the run
            created: Entries created in Redmine
            failed: Entries that failed to be created
            error: Error message if the run failed
            duration_seconds: Run duration in seconds
            details: Per-entry error messages

        Returns:
            ID of recorded run
        """
        details_json = json.dumps(details) if details else None

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO runs (timestamp, kind, success, period, worklog_total, ledger_total,
                                  missing, missing_hours, created, failed, error,
                                  duration_seconds, details)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    datetime.now().isoformat(),
                    kind,
                    success,
                    period,
                    worklog_total,
                    ledger_total,
                    missing,
                    missing_hours,
                    created,
                    failed,
                    error,
                    duration_seconds,
                    details_json,
                ),
            )
            conn.commit()
            run_id = cursor.lastrowid
            logger.info(
                f"Recorded {kind} run #{run_id}: success={success}, missing={missing}, "
                f"created={created}, failed={failed}"
            )
            return int(run_id) if run_id is not None else -1

    def get_last_runs(self, limit: int = 50) -> list[dict[str, Any]]:
        """Get last N runs, newest first.

        Args:
            limit: Number of runs to retrieve

        Returns:
            List of run records
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,)).fetchall()

            runs = []
            for row in rows:
                run = dict(row)
                run["success"] = bool(run["success"])
                if run.get("details"):
                    try:
                        run["details"] = json.loads(run["details"])
                    except json.JSONDecodeError:
                        run["details"] = []
                else:
                    run["details"] = []
                runs.append(run)

            return runs

    def get_run_stats(self) -> dict[str, Any]:
        """Get overall run statistics."""
        with sqlite3.connect(self.db_path) as conn:
            stats = conn.execute(
                """
                SELECT
                    COUNT(*) as total_runs,
                    SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) as successful,
                    SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) as failed,
                    SUM(created) as total_created,
                    SUM(failed) as total_failed_entries,
                    AVG(duration_seconds) as avg_duration
                FROM runs
                """
            ).fetchone()

            return {
                "total_runs": stats[0] or 0,
                "successful": stats[1] or 0,
                "failed": stats[2] or 0,
                "total_created": stats[3] or 0,
                "total_failed_entries": stats[4] or 0,
                "avg_duration": stats[5] or 0,
            }

    def clear_old_records(self, days: int = 90) -> None:
        """Delete run records older than N days.

        Args:
            days: Number of days to keep
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                DELETE FROM runs
                WHERE datetime(timestamp) < datetime('now', ? || ' days')
                """,
                (f"-{days}",),
            )
            conn.commit()
            logger.info(f"Cleaned up run records older than {days} days")
