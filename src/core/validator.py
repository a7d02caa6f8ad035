"""
Boundary validator for untrusted student records.

Invalid records are filtered out with per-field error messages instead of
raising, so one bad row never stops the class run.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from src.core.models import Grade, PerformanceTrend, Student
from src.shared.results import ContractResult

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Accepted in addition to ISO-8601
_DATE_FORMATS = (
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a, %d %b %Y %H:%M:%S %Z",
)


@dataclass
class ValidationReport:
    """Valid students plus every error found in the payload."""
    valid: List[Student] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _is_record(value: Any) -> bool:
    return isinstance(value, dict)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def _is_finite_number(value: Any) -> bool:
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _in_range(value: Any, low: float, high: float) -> bool:
    return _is_finite_number(value) and low <= value <= high


def _parse_trend(value: Any) -> Optional[PerformanceTrend]:
    if not isinstance(value, str):
        return None
    try:
        return PerformanceTrend(value)
    except ValueError:
        return None


def is_valid_date(value: Any) -> bool:
    """True when the value is a non-empty, parseable date string."""
    if not _is_non_empty_string(value):
        return False
    text = value.strip()
    try:
        datetime.fromisoformat(text.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    return False


def _validate_grade(value: Any, index: int) -> ContractResult[Grade]:
    if not _is_record(value):
        return ContractResult.failure([f"grades[{index}] must be an object"])

    subject = value.get("subject")
    score = value.get("score")
    errors = []

    if not _is_non_empty_string(subject):
        errors.append(f"grades[{index}].subject must be a non-empty string")
    if not _in_range(score, 0, 100):
        errors.append(f"grades[{index}].score must be a number between 0 and 100")

    if errors:
        return ContractResult.failure(errors)

    return ContractResult.success(Grade(subject=subject.strip(), score=float(score)))


def validate_student(value: Any, index: int) -> ContractResult[Student]:
    """
    Validate one raw student record.

    Args:
        value: Untrusted decoded JSON value
        index: Position in the payload, used for error messages

    Returns:
        ContractResult with a Student, or every field error found
    """
    if not _is_record(value):
        return ContractResult.failure([f"students[{index}] must be an object"])

    errors: List[str] = []

    student_id = value.get("id")
    name = value.get("name")
    email = value.get("email")
    grades = value.get("grades")
    participation = value.get("participationScore")
    completion = value.get("assignmentCompletionRate")
    notes = value.get("teacherNotes")
    trend = _parse_trend(value.get("performanceTrend"))
    last_assessment = value.get("lastAssessmentDate")

    if not _is_non_empty_string(student_id):
        errors.append("id must be a non-empty string")
    if not _is_non_empty_string(name):
        errors.append("name must be a non-empty string")
    if not _is_non_empty_string(email) or not EMAIL_PATTERN.match(email.strip()):
        errors.append("email must be a valid address")

    valid_grades: List[Grade] = []
    if not isinstance(grades, list) or len(grades) == 0:
        errors.append("grades must be a non-empty array")
    else:
        for grade_index, grade in enumerate(grades):
            result = _validate_grade(grade, grade_index)
            if result.ok:
                valid_grades.append(result.value)
            else:
                errors.extend(result.errors)

    if not _in_range(participation, 1, 10):
        errors.append("participationScore must be a number between 1 and 10")
    if not _in_range(completion, 0, 100):
        errors.append("assignmentCompletionRate must be a number between 0 and 100")
    if not isinstance(notes, str):
        errors.append("teacherNotes must be a string")
    if trend is None:
        errors.append("performanceTrend must be improving, stable, or declining")
    if not is_valid_date(last_assessment):
        errors.append("lastAssessmentDate must be a valid date string")

    if errors:
        return ContractResult.failure(errors)

    return ContractResult.success(Student(
        id=student_id.strip(),
        name=name.strip(),
        email=email.strip(),
        grades=valid_grades,
        participation_score=float(participation),
        assignment_completion_rate=float(completion),
        teacher_notes=notes,
        performance_trend=trend,
        last_assessment_date=last_assessment.strip(),
    ))


def validate_students(data: Any) -> ValidationReport:
    """Validate a decoded JSON payload that should be a list of students."""
    report = ValidationReport()

    if not isinstance(data, list):
        report.errors.append("students payload must be an array of student objects")
        return report

    for index, value in enumerate(data):
        result = validate_student(value, index)
        if result.ok:
            report.valid.append(result.value)
        else:
            report.errors.extend(f"students[{index}]: {error}" for error in result.errors)

    return report
