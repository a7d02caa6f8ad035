"""
Pydantic models for student records, analyses, and insights.

Input and LLM-facing JSON uses camelCase keys; Python code uses snake_case.
Every model accepts either form and dumps camelCase with ``by_alias=True``.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel


# Insight contract bounds, shared by the parser and the fallback generator.
ITEM_MAX_CHARS = 180
STUDENT_TEXT_MAX = {
    "positiveObservation": 220,
    "nextStepGoal": 200,
    "encouragement": 200,
}
STUDENT_ARRAY_BOUNDS = {
    "strengths": (1, 3),
    "improvementAreas": (1, 2),
    "strategies": (2, 3),
}
CLASS_OVERVIEW_MAX = 240
CLASS_ARRAY_BOUNDS = {
    "strengths": (1, 4),
    "nextSteps": (2, 4),
}
ATTENTION_NAME_MAX = 80
ATTENTION_REASON_MAX = 160

ContractItem = Annotated[str, StringConstraints(min_length=1, max_length=ITEM_MAX_CHARS)]


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PerformanceTrend(str, Enum):
    """Qualitative performance trend."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RiskLevel(str, Enum):
    """Coarse risk bucket for teacher triage."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Grade(CamelModel):
    """One subject score."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    subject: str
    score: float = Field(ge=0, le=100)


class Student(CamelModel):
    """Validated student record."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    email: str
    grades: List[Grade] = Field(min_length=1)
    participation_score: float = Field(ge=1, le=10)
    assignment_completion_rate: float = Field(ge=0, le=100)
    teacher_notes: str = ""
    performance_trend: PerformanceTrend
    last_assessment_date: str


class StudentMetrics(CamelModel):
    """Deterministic metrics derived from one student."""
    average_score: float
    highest_subjects: List[Grade]
    lowest_subjects: List[Grade]
    participation_score: float
    assignment_completion_rate: float
    needs_attention: bool


class StudentAnalysis(CamelModel):
    """Analysis bundle for one student."""
    student: Student
    metrics: StudentMetrics
    strengths: List[str] = Field(default_factory=list)
    improvement_areas: List[str] = Field(default_factory=list)
    risk_level: RiskLevel


class ClassSummary(CamelModel):
    """Aggregate over all analysed students of a run."""
    class_average: float
    top_students: List[str] = Field(default_factory=list)
    attention_needed: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)


class TeacherPreferences(CamelModel):
    """Optional teacher rules that bias prompts and fallbacks."""
    class_goals: Optional[List[str]] = None
    focus_areas: Optional[List[str]] = None
    preferred_strategies: Optional[List[str]] = None
    tone: Optional[Literal["warm", "neutral", "direct"]] = None
    teacher_notes: Optional[str] = None


class StudentInsight(CamelModel):
    """Contract-conforming coaching insight for one student."""
    positive_observation: str = Field(min_length=1, max_length=STUDENT_TEXT_MAX["positiveObservation"])
    strengths: List[ContractItem] = Field(min_length=1, max_length=3)
    improvement_areas: List[ContractItem] = Field(min_length=1, max_length=2)
    strategies: List[ContractItem] = Field(min_length=2, max_length=3)
    next_step_goal: str = Field(min_length=1, max_length=STUDENT_TEXT_MAX["nextStepGoal"])
    encouragement: str = Field(min_length=1, max_length=STUDENT_TEXT_MAX["encouragement"])


class AttentionItem(CamelModel):
    """A student the teacher should check in with, and why."""
    name: str = Field(min_length=1, max_length=ATTENTION_NAME_MAX)
    reason: str = Field(min_length=1, max_length=ATTENTION_REASON_MAX)


class ClassInsight(CamelModel):
    """Contract-conforming class summary insight for the teacher."""
    class_overview: str = Field(min_length=1, max_length=CLASS_OVERVIEW_MAX)
    strengths: List[ContractItem] = Field(min_length=1, max_length=4)
    attention_needed: List[AttentionItem] = Field(default_factory=list)
    next_steps: List[ContractItem] = Field(min_length=2, max_length=4)
