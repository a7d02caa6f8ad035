"""
Pydantic models for the run audit trail.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from src.core.models import StudentInsight


class RunStatus(str, Enum):
    """Terminal (or in-flight) status of a pipeline run."""
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_CLASS_FAILURE = "completed_with_class_failure"
    NO_VALID_STUDENTS = "no_valid_students"
    NO_SUCCESSFUL_ANALYSES = "no_successful_analyses"
    INPUT_FAILED = "input_failed"
    PERSISTENCE_ABORTED = "persistence_aborted"
    FAILED = "failed"


class StudentOutcomeStatus(str, Enum):
    """Outcome of one student's pass through the pipeline."""
    SENT = "sent"
    ANALYSIS_FAILED = "analysis_failed"
    ENRICHMENT_FAILED = "enrichment_failed"
    DELIVERY_FAILED = "delivery_failed"


class ClassOutcomeStatus(str, Enum):
    """Outcome of the class summary stage."""
    SENT = "sent"
    SUMMARY_FAILED = "summary_failed"


class RunStats(BaseModel):
    """Counts known when a run starts."""
    run_id: str
    started_at: str
    student_count: int
    valid_student_count: int


class RunRecord(BaseModel):
    """One row of the runs table."""
    run_id: str
    started_at: str
    completed_at: Optional[str] = None
    student_count: int = 0
    valid_student_count: int = 0
    status: str


class StudentOutcome(BaseModel):
    """One row of the student_outcomes table."""
    id: Optional[int] = None
    run_id: str
    student_id: str
    status: str
    used_fallback: bool = False
    email_subject: Optional[str] = None
    email_path: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[str] = None


class LatestInsight(BaseModel):
    """Most recent insight stored for a student."""
    insight: Optional[StudentInsight] = None
    created_at: Optional[str] = None
