"""
Main coaching pipeline: one end-to-end run over a batch of student records.

validate -> analyze -> enrich (LLM) -> contract check / fallback -> render
-> deliver -> memory update -> audit, per student, then the same sequence
once for the class summary. A failure is isolated to the student (or stage)
where it happens.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Tuple

from src.audit.models import ClassOutcomeStatus, RunStats, RunStatus, StudentOutcomeStatus
from src.audit.store import AuditStore
from src.core.analyzer import analyze_student, build_class_summary
from src.core.insights.contract import parse_class_insight, parse_student_insight
from src.core.insights.fallback import build_fallback_class_insight, build_fallback_student_insight
from src.core.insights.render import render_class_message, render_student_message
from src.core.models import (
    ClassInsight,
    ClassSummary,
    Student,
    StudentAnalysis,
    StudentInsight,
    TeacherPreferences,
)
from src.core.preferences import load_preferences
from src.core.prompt.builder import InsightAgent
from src.core.validator import validate_students
from src.delivery.email import EmailOutbox, build_class_email, build_student_email
from src.memory.models import ClassMemory, StudentMemory
from src.memory.store import MemoryStore
from src.memory.update import (
    build_class_archive,
    build_student_archive,
    update_class_memory,
    update_student_memory,
)
from src.shared.config import CoachSettings, settings
from src.shared.exceptions import InputShapeError, RunInProgressError, StageFailure
from src.shared.llm import LLMClient, LLMError
from src.shared.logging import get_logger, log_with_context
from src.shared.results import WriteOutcome, WriteStatus

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Summary of one pipeline run."""
    run_id: str
    status: RunStatus
    student_count: int = 0
    valid_student_count: int = 0
    processed_count: int = 0
    fallback_count: int = 0
    validation_errors: List[str] = field(default_factory=list)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_students_raw(path: Path) -> Any:
    """
    Read the raw student payload.

    Raises:
        InputShapeError: If the file cannot be read or is not valid JSON
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InputShapeError(f"Could not read students from {path}: {e}") from e


def _memory_error(*outcomes: WriteOutcome) -> Optional[str]:
    errors = [o.error for o in outcomes if not o.ok and o.error]
    return "; ".join(errors) or None


class InsightPipeline:
    """Wires validation, analysis, enrichment, delivery, memory and audit together."""

    def __init__(
        self,
        audit_store: AuditStore,
        memory_store: MemoryStore,
        agent: Optional[InsightAgent] = None,
        outbox: Optional[EmailOutbox] = None,
        preferences: Optional[TeacherPreferences] = None,
        config: Optional[CoachSettings] = None,
    ):
        self.config = config or settings
        self.audit = audit_store
        self.memory = memory_store
        self.agent = agent
        self.outbox = outbox or EmailOutbox(self.config.pipeline.outbox_dir)
        self.preferences = preferences

        self._guard = threading.Lock()
        self._active_run_id: Optional[str] = None
        self.last_run_id: Optional[str] = None

    def active_run_id(self) -> Optional[str]:
        """Id of the run in progress, or None when idle."""
        with self._guard:
            return self._active_run_id

    def _claim(self, run_id: str) -> None:
        with self._guard:
            if self._active_run_id is not None:
                raise RunInProgressError(self._active_run_id)
            self._active_run_id = run_id
            self.last_run_id = run_id

    def _release(self, run_id: str) -> None:
        with self._guard:
            if self._active_run_id == run_id:
                self._active_run_id = None

    async def run_once(self, raw_students: Any = None) -> RunResult:
        """
        Execute one run over the batch.

        Args:
            raw_students: Decoded payload; read from the configured students
                file when None

        Returns:
            RunResult with the terminal status and counts

        Raises:
            RunInProgressError: If another run is active (never queued)
        """
        run_id = str(uuid.uuid4())
        self._claim(run_id)
        log_with_context(logger, logging.INFO, "Starting analysis run", run_id=run_id, action="run_start")

        try:
            result = await self._execute(run_id, raw_students)
        except Exception as e:
            log_with_context(
                logger, logging.ERROR, f"Run failed unexpectedly: {e}",
                run_id=run_id, action="run_failed",
            )
            self.audit.finish_run(run_id, RunStatus.FAILED)
            raise
        finally:
            self._release(run_id)

        log_with_context(
            logger, logging.INFO,
            f"Run finished with status {result.status.value}: "
            f"{result.processed_count}/{result.valid_student_count} students processed, "
            f"{result.fallback_count} fallback insight(s)",
            run_id=run_id, action="run_finish",
        )
        return result

    def _finish(self, result: RunResult, status: RunStatus) -> RunResult:
        result.status = status
        self.audit.finish_run(result.run_id, status)
        return result

    async def _execute(self, run_id: str, raw_students: Any) -> RunResult:
        result = RunResult(run_id=run_id, status=RunStatus.RUNNING)
        started_at = _now()

        try:
            raw = raw_students if raw_students is not None else load_students_raw(
                Path(self.config.pipeline.students_json_path)
            )
        except InputShapeError as e:
            log_with_context(logger, logging.ERROR, str(e), run_id=run_id, action="load_students")
            result.validation_errors = [str(e)]
            start = self.audit.start_run(RunStats(
                run_id=run_id, started_at=started_at, student_count=0, valid_student_count=0,
            ))
            if start.status is WriteStatus.FATAL:
                return self._finish(result, RunStatus.PERSISTENCE_ABORTED)
            return self._finish(result, RunStatus.INPUT_FAILED)

        report = validate_students(raw)
        result.student_count = len(raw) if isinstance(raw, list) else 0
        result.valid_student_count = len(report.valid)
        result.validation_errors = report.errors
        if report.errors:
            log_with_context(
                logger, logging.WARNING,
                f"{len(report.errors)} validation error(s); {len(report.valid)} valid student(s)",
                run_id=run_id, action="validate",
            )

        start = self.audit.start_run(RunStats(
            run_id=run_id,
            started_at=started_at,
            student_count=result.student_count,
            valid_student_count=result.valid_student_count,
        ))
        if start.status is WriteStatus.FATAL:
            log_with_context(
                logger, logging.ERROR, f"Run record could not be created: {start.error}",
                run_id=run_id, action="start_run",
            )
            return self._finish(result, RunStatus.PERSISTENCE_ABORTED)

        if not report.valid:
            log_with_context(logger, logging.WARNING, "No valid students available", run_id=run_id)
            return self._finish(result, RunStatus.NO_VALID_STUDENTS)

        analyses: List[StudentAnalysis] = []
        for student in report.valid:
            analysis = await self._process_student(run_id, student, result)
            if analysis is not None:
                analyses.append(analysis)

        if not analyses:
            log_with_context(
                logger, logging.WARNING, "No successful analyses; skipping class summary", run_id=run_id,
            )
            return self._finish(result, RunStatus.NO_SUCCESSFUL_ANALYSES)

        class_ok = await self._process_class(run_id, analyses, result)
        status = RunStatus.COMPLETED if class_ok else RunStatus.COMPLETED_WITH_CLASS_FAILURE
        return self._finish(result, status)

    # Student stage

    async def _student_insight(
        self,
        analysis: StudentAnalysis,
        memory: StudentMemory,
        run_id: str,
    ) -> Tuple[StudentInsight, bool]:
        """Contract-checked insight, or a fallback. Returns (insight, used_fallback)."""
        try:
            raw = await self.agent.generate_student_insight(analysis, memory) if self.agent else ""
        except Exception as e:
            raise StageFailure("enrichment", str(e)) from e

        parsed = parse_student_insight(raw)
        if parsed.ok:
            return parsed.value, False

        log_with_context(
            logger, logging.WARNING, f"Student insight invalid, using fallback: {parsed.errors}",
            run_id=run_id, student_id=analysis.student.id, action="contract_check",
        )
        return build_fallback_student_insight(analysis, self.preferences), True

    def _deliver_student(self, student: Student, insight: StudentInsight) -> Tuple[str, Optional[Path]]:
        try:
            email = build_student_email(student, render_student_message(insight))
            return email.subject, self.outbox.send(email)
        except Exception as e:
            raise StageFailure("delivery", str(e)) from e

    async def _process_student(
        self,
        run_id: str,
        student: Student,
        result: RunResult,
    ) -> Optional[StudentAnalysis]:
        """Run one student through every stage; returns the analysis when it succeeded."""
        try:
            analysis = analyze_student(student)
        except Exception as e:
            log_with_context(
                logger, logging.ERROR, f"Failed to analyze student: {e}",
                run_id=run_id, student_id=student.id, action="analyze",
            )
            self.audit.record_student_outcome(
                run_id, student.id, StudentOutcomeStatus.ANALYSIS_FAILED, error=str(e),
            )
            return None

        insight: Optional[StudentInsight] = None
        stage = "enrichment"
        try:
            memory = self.memory.load_student(student.id)
            insight, used_fallback = await self._student_insight(analysis, memory, run_id)
            stage = "delivery"
            subject, email_path = self._deliver_student(student, insight)
        except Exception as e:
            if isinstance(e, StageFailure):
                stage, detail = e.stage, e.detail
            else:
                detail = str(e)
            status = (
                StudentOutcomeStatus.ENRICHMENT_FAILED if stage == "enrichment"
                else StudentOutcomeStatus.DELIVERY_FAILED
            )
            log_with_context(
                logger, logging.ERROR, f"Student {stage} failed: {detail}",
                run_id=run_id, student_id=student.id, action=stage,
            )
            self.audit.record_student_outcome(
                run_id, student.id, status, analysis=analysis, insight=insight, error=detail,
            )
            return analysis

        # Memory problems after delivery only annotate the sent outcome
        try:
            updated = update_student_memory(memory, student, insight, self.config.memory.history_limit)
            saved = self.memory.save_student(updated)
            archived = self.memory.archive_student(build_student_archive(run_id, updated))
            memory_error = _memory_error(saved, archived)
        except Exception as e:
            memory_error = f"memory update failed: {e}"
            log_with_context(
                logger, logging.ERROR, f"Student memory update failed: {e}",
                run_id=run_id, student_id=student.id, action="memory_update",
            )

        self.audit.record_student_outcome(
            run_id,
            student.id,
            StudentOutcomeStatus.SENT,
            analysis=analysis,
            insight=insight,
            email_subject=subject,
            email_path=str(email_path) if email_path else None,
            error=memory_error,
            used_fallback=used_fallback,
        )

        result.processed_count += 1
        if used_fallback:
            result.fallback_count += 1
        return analysis

    # Class stage

    async def _class_insight(
        self,
        summary: ClassSummary,
        memory: ClassMemory,
        run_id: str,
    ) -> Tuple[ClassInsight, bool]:
        raw = await self.agent.generate_class_insight(summary, memory) if self.agent else ""
        parsed = parse_class_insight(raw)
        if parsed.ok:
            return parsed.value, False

        log_with_context(
            logger, logging.WARNING, f"Class insight invalid, using fallback: {parsed.errors}",
            run_id=run_id, action="contract_check",
        )
        return build_fallback_class_insight(summary, self.preferences), True

    async def _process_class(self, run_id: str, analyses: List[StudentAnalysis], result: RunResult) -> bool:
        """Run the class summary stage once; returns False when it failed."""
        summary = build_class_summary(analyses)

        try:
            memory = self.memory.load_class()
            insight, used_fallback = await self._class_insight(summary, memory, run_id)
            email = build_class_email(self.config.pipeline.teacher_email, render_class_message(insight))
            email_path = self.outbox.send(email)
        except Exception as e:
            log_with_context(
                logger, logging.ERROR, f"Class summary failed: {e}",
                run_id=run_id, action="class_summary",
            )
            self.audit.record_class_outcome(
                run_id, summary, ClassOutcomeStatus.SUMMARY_FAILED, error=str(e),
            )
            return False

        try:
            updated = update_class_memory(memory, insight, self.config.memory.history_limit, self.preferences)
            saved = self.memory.save_class(updated)
            archived = self.memory.archive_class(build_class_archive(run_id, insight))
            memory_error = _memory_error(saved, archived)
        except Exception as e:
            memory_error = f"memory update failed: {e}"
            log_with_context(
                logger, logging.ERROR, f"Class memory update failed: {e}",
                run_id=run_id, action="memory_update",
            )

        self.audit.record_class_outcome(
            run_id,
            summary,
            ClassOutcomeStatus.SENT,
            insight=insight,
            email_subject=email.subject,
            email_path=str(email_path) if email_path else None,
            error=memory_error,
            used_fallback=used_fallback,
        )
        if used_fallback:
            result.fallback_count += 1
        return True


def create_pipeline(config: Optional[CoachSettings] = None) -> InsightPipeline:
    """
    Build a pipeline from configuration.

    Runs without an LLM (fallback insights only) when no API key is configured.
    """
    config = config or settings
    preferences = load_preferences(config.pipeline.preferences_path)

    agent: Optional[InsightAgent] = None
    try:
        agent = InsightAgent(llm_client=LLMClient(config=config.llm), preferences=preferences)
    except LLMError as e:
        logger.warning(f"LLM unavailable, insights will use deterministic fallbacks: {e}")

    return InsightPipeline(
        audit_store=AuditStore(config.pipeline.history_db_path, config.pipeline.require_run_record),
        memory_store=MemoryStore(config.memory.memory_dir),
        agent=agent,
        outbox=EmailOutbox(config.pipeline.outbox_dir, config.pipeline.email_from),
        preferences=preferences,
        config=config,
    )
