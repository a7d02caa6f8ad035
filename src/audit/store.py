"""
AuditStore: SQLite + WAL mode run history.

Every run gets a row in ``runs``; every student and class attempt gets an
append-only row in ``student_outcomes`` / ``class_outcomes``. Writes never
raise: failures are logged and returned as a WriteOutcome so one database
hiccup does not take the batch down.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from src.audit.models import LatestInsight, RunRecord, RunStats, RunStatus, StudentOutcome
from src.core.models import ClassInsight, ClassSummary, StudentAnalysis, StudentInsight
from src.shared.config import settings
from src.shared.exceptions import PersistenceFailure
from src.shared.logging import get_logger, log_with_context
from src.shared.results import WriteOutcome

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditStore:
    """Append-mostly audit trail of runs and per-item outcomes."""

    def __init__(self, db_path: Optional[Path] = None, require_run_record: Optional[bool] = None):
        self.db_path = Path(db_path or settings.pipeline.history_db_path)
        self.require_run_record = (
            settings.pipeline.require_run_record if require_run_record is None else require_run_record
        )

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_database()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceFailure(f"Audit database unavailable at {self.db_path}: {e}") from e

    def _init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            conn.executescript("""
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    student_count INTEGER NOT NULL,
                    valid_student_count INTEGER NOT NULL,
                    status TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS student_outcomes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    student_id TEXT NOT NULL,
                    analysis_json TEXT,
                    insight_json TEXT,
                    email_subject TEXT,
                    email_path TEXT,
                    status TEXT NOT NULL,
                    error TEXT,
                    used_fallback INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS class_outcomes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    summary_json TEXT NOT NULL,
                    insight_json TEXT,
                    email_subject TEXT,
                    email_path TEXT,
                    status TEXT NOT NULL,
                    error TEXT,
                    used_fallback INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_runs_started ON runs(started_at);
                CREATE INDEX IF NOT EXISTS idx_student_outcomes_student ON student_outcomes(student_id);
                CREATE INDEX IF NOT EXISTS idx_student_outcomes_run ON student_outcomes(run_id);
                CREATE INDEX IF NOT EXISTS idx_class_outcomes_run ON class_outcomes(run_id);
            """)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def start_run(self, stats: RunStats) -> WriteOutcome:
        """
        Record the start of a run with status 'running'.

        Returns:
            WriteOutcome; a failure is FATAL when the run record is required
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO runs (run_id, started_at, student_count, valid_student_count, status)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        stats.run_id,
                        stats.started_at,
                        stats.student_count,
                        stats.valid_student_count,
                        RunStatus.RUNNING.value,
                    ),
                )
        except sqlite3.Error as e:
            log_with_context(
                logger, logging.ERROR, f"Failed to record run start: {e}",
                run_id=stats.run_id, action="start_run",
            )
            return WriteOutcome.failed(str(e), fatal=self.require_run_record)
        return WriteOutcome.success()

    def finish_run(self, run_id: str, status: RunStatus) -> WriteOutcome:
        """Set completed_at and the terminal status of a run."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "UPDATE runs SET completed_at = ?, status = ? WHERE run_id = ?",
                    (_now(), RunStatus(status).value, run_id),
                )
        except (sqlite3.Error, ValueError) as e:
            log_with_context(
                logger, logging.ERROR, f"Failed to record run completion: {e}",
                run_id=run_id, action="finish_run",
            )
            return WriteOutcome.failed(str(e))
        return WriteOutcome.success()

    def record_student_outcome(
        self,
        run_id: str,
        student_id: str,
        status: str,
        analysis: Optional[StudentAnalysis] = None,
        insight: Optional[StudentInsight] = None,
        email_subject: Optional[str] = None,
        email_path: Optional[str] = None,
        error: Optional[str] = None,
        used_fallback: bool = False,
    ) -> WriteOutcome:
        """Append one student outcome row."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO student_outcomes
                        (run_id, student_id, analysis_json, insight_json, email_subject,
                         email_path, status, error, used_fallback, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run_id,
                        student_id,
                        analysis.model_dump_json(by_alias=True) if analysis else None,
                        insight.model_dump_json(by_alias=True) if insight else None,
                        email_subject,
                        str(email_path) if email_path else None,
                        str(getattr(status, "value", status)),
                        error,
                        1 if used_fallback else 0,
                        _now(),
                    ),
                )
        except sqlite3.Error as e:
            log_with_context(
                logger, logging.ERROR, f"Failed to record student outcome: {e}",
                run_id=run_id, student_id=student_id, action="record_student_outcome",
            )
            return WriteOutcome.failed(str(e))
        return WriteOutcome.success()

    def record_class_outcome(
        self,
        run_id: str,
        summary: ClassSummary,
        status: str,
        insight: Optional[ClassInsight] = None,
        email_subject: Optional[str] = None,
        email_path: Optional[str] = None,
        error: Optional[str] = None,
        used_fallback: bool = False,
    ) -> WriteOutcome:
        """Append one class outcome row."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO class_outcomes
                        (run_id, summary_json, insight_json, email_subject, email_path,
                         status, error, used_fallback, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run_id,
                        summary.model_dump_json(by_alias=True),
                        insight.model_dump_json(by_alias=True) if insight else None,
                        email_subject,
                        str(email_path) if email_path else None,
                        str(getattr(status, "value", status)),
                        error,
                        1 if used_fallback else 0,
                        _now(),
                    ),
                )
        except sqlite3.Error as e:
            log_with_context(
                logger, logging.ERROR, f"Failed to record class outcome: {e}",
                run_id=run_id, action="record_class_outcome",
            )
            return WriteOutcome.failed(str(e))
        return WriteOutcome.success()

    def list_runs(self, limit: int = 25) -> List[RunRecord]:
        """Most recent runs, newest first."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT run_id, started_at, completed_at, student_count, valid_student_count, status
                    FROM runs
                    ORDER BY started_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    (max(limit, 0),),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list runs: {e}")
            return []

        return [RunRecord(**dict(row)) for row in rows]

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    """
                    SELECT run_id, started_at, completed_at, student_count, valid_student_count, status
                    FROM runs WHERE run_id = ?
                    """,
                    (run_id,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read run {run_id}: {e}")
            return None
        return RunRecord(**dict(row)) if row else None

    def list_student_outcomes(self, run_id: str) -> List[StudentOutcome]:
        """Student outcome rows for one run, in insertion order."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT id, run_id, student_id, status, used_fallback, email_subject,
                           email_path, error, created_at
                    FROM student_outcomes
                    WHERE run_id = ?
                    ORDER BY id
                    """,
                    (run_id,),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list student outcomes for run {run_id}: {e}")
            return []
        return [StudentOutcome(**dict(row)) for row in rows]

    def latest_student_insight(self, student_id: str) -> Optional[LatestInsight]:
        """
        The most recent stored insight for a student.

        Returns:
            LatestInsight, with insight=None when the stored blob no longer
            matches the current shape; None when nothing was stored
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    """
                    SELECT insight_json, created_at
                    FROM student_outcomes
                    WHERE student_id = ? AND insight_json IS NOT NULL
                    ORDER BY created_at DESC, id DESC
                    LIMIT 1
                    """,
                    (student_id,),
                ).fetchone()
        except sqlite3.Error as e:
            log_with_context(
                logger, logging.ERROR, f"Failed to read latest insight: {e}",
                student_id=student_id, action="latest_student_insight",
            )
            return None

        if row is None:
            return None

        try:
            insight = StudentInsight.model_validate(json.loads(row["insight_json"]))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Stored insight for {student_id} is unreadable: {e}")
            insight = None

        return LatestInsight(insight=insight, created_at=row["created_at"])
