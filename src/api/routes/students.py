"""
Student list and per-student summary endpoints.
"""

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from src.api.dependencies import AuditStoreDep, ConfigDep, MemoryStoreDep
from src.core.models import StudentInsight
from src.core.pipeline import load_students_raw
from src.core.validator import validate_students
from src.memory.models import StudentMemory
from src.shared.exceptions import InputShapeError
from src.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/students", tags=["students"])


class StudentProfile(BaseModel):
    id: str
    name: str
    email: str


class StudentListResponse(BaseModel):
    students: List[StudentProfile]


class StudentSummaryResponse(BaseModel):
    student_id: str
    memory: StudentMemory
    latest_insight: Optional[StudentInsight] = None
    last_run_at: Optional[str] = None


@router.get("", response_model=StudentListResponse)
async def list_students(config: ConfigDep):
    """Valid students from the configured input file."""
    try:
        raw = load_students_raw(Path(config.pipeline.students_json_path))
    except InputShapeError as e:
        logger.error(f"Failed to load students: {e}")
        raise HTTPException(status_code=500, detail="Failed to load students")

    report = validate_students(raw)
    return StudentListResponse(students=[
        StudentProfile(id=s.id, name=s.name, email=s.email) for s in report.valid
    ])


@router.get("/{student_id}/summary", response_model=StudentSummaryResponse)
async def student_summary(student_id: str, memory_store: MemoryStoreDep, audit_store: AuditStoreDep):
    """Current memory plus the latest stored insight for one student."""
    if not student_id.strip():
        raise HTTPException(status_code=400, detail="student_id is required")

    memory = memory_store.load_student(student_id)
    latest = audit_store.latest_student_insight(student_id)

    return StudentSummaryResponse(
        student_id=student_id,
        memory=memory,
        latest_insight=latest.insight if latest else None,
        last_run_at=latest.created_at if latest else None,
    )
