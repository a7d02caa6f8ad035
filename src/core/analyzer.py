"""
Deterministic analysis engine.

Everything here is pure: no file I/O, no network, no database. The outputs
become prompt context for the LLM and drive the fallback insights.
"""

from typing import List

from src.core.models import (
    ClassSummary,
    Grade,
    PerformanceTrend,
    RiskLevel,
    Student,
    StudentAnalysis,
    StudentMetrics,
)

SUBJECT_SLICE = 2
TOP_STUDENTS = 3


def average(scores: List[float]) -> float:
    """Arithmetic mean rounded to 2 decimals (0 for an empty list)."""
    if not scores:
        return 0.0
    return round(sum(scores) / len(scores), 2)


def determine_risk(metrics: StudentMetrics, trend: PerformanceTrend) -> RiskLevel:
    """Threshold-based risk bucket, evaluated top-down."""
    if (
        metrics.average_score < 70
        or metrics.participation_score <= 4
        or metrics.assignment_completion_rate < 70
        or trend == PerformanceTrend.DECLINING
    ):
        return RiskLevel.HIGH
    if (
        metrics.average_score < 80
        or metrics.participation_score <= 6
        or metrics.assignment_completion_rate < 85
    ):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def analyze_student(student: Student) -> StudentAnalysis:
    """
    Analyze a validated student record.

    Args:
        student: Validated student

    Returns:
        StudentAnalysis; identical input always yields identical output
    """
    average_score = average([grade.score for grade in student.grades])
    # sorted() is stable, so ties keep their input order
    highest: List[Grade] = sorted(student.grades, key=lambda g: g.score, reverse=True)[:SUBJECT_SLICE]
    lowest: List[Grade] = sorted(student.grades, key=lambda g: g.score)[:SUBJECT_SLICE]

    trend = student.performance_trend
    completion = student.assignment_completion_rate
    participation = student.participation_score

    metrics = StudentMetrics(
        average_score=average_score,
        highest_subjects=highest,
        lowest_subjects=lowest,
        participation_score=participation,
        assignment_completion_rate=completion,
        needs_attention=(
            average_score < 75
            or completion < 80
            or trend == PerformanceTrend.DECLINING
        ),
    )

    strengths: List[str] = []
    if average_score >= 85:
        strengths.append("Strong overall academic performance")
    if participation >= 8:
        strengths.append("Consistent class participation")
    if completion >= 90:
        strengths.append("High assignment completion rate")
    if trend == PerformanceTrend.IMPROVING:
        strengths.append("Recent performance trend is improving")

    improvement_areas: List[str] = []
    if average_score < 75:
        improvement_areas.append("Overall grade average needs improvement")
    if participation <= 6:
        improvement_areas.append("Increase class participation")
    if completion < 85:
        improvement_areas.append("Improve assignment completion rate")
    if trend == PerformanceTrend.DECLINING:
        improvement_areas.append("Address recent performance decline")
    if lowest:
        subjects = ", ".join(grade.subject for grade in lowest)
        improvement_areas.append(f"Focus on weaker subjects: {subjects}")

    return StudentAnalysis(
        student=student,
        metrics=metrics,
        strengths=strengths,
        improvement_areas=improvement_areas,
        risk_level=determine_risk(metrics, trend),
    )


def build_class_summary(analyses: List[StudentAnalysis]) -> ClassSummary:
    """Fold per-student analyses into a class-level summary."""
    # Average of student averages, not weighted by grade count
    class_average = average([a.metrics.average_score for a in analyses])
    by_average = sorted(analyses, key=lambda a: a.metrics.average_score, reverse=True)

    top_students = [a.student.name for a in by_average[:TOP_STUDENTS]]
    attention_needed = [
        a.student.name
        for a in analyses
        if a.metrics.needs_attention or a.risk_level == RiskLevel.HIGH
    ]

    notes: List[str] = []
    declining = sum(1 for a in analyses if a.student.performance_trend == PerformanceTrend.DECLINING)
    if declining > 0:
        notes.append(f"{declining} student(s) show a declining trend.")
    strong_completion = sum(1 for a in analyses if a.metrics.assignment_completion_rate >= 90)
    if strong_completion > 0:
        notes.append(f"{strong_completion} student(s) have 90%+ assignment completion.")

    return ClassSummary(
        class_average=class_average,
        top_students=top_students,
        attention_needed=attention_needed,
        notes=notes,
    )
