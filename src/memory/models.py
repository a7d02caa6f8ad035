"""
Pydantic models for longitudinal memory.
"""

from typing import List

from pydantic import Field

from src.core.models import AttentionItem, CamelModel


class MemoryEntry(CamelModel):
    """One rolling history entry."""
    date: str
    note: str


class StudentMemory(CamelModel):
    """Compact per-student memory, injected into prompts on the next run."""
    student_id: str
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    improvement_areas: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    last_updated: str = ""
    history: List[MemoryEntry] = Field(default_factory=list)


class ClassMemory(CamelModel):
    """Class-level memory for the teacher summary."""
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    class_goals: List[str] = Field(default_factory=list)
    focus_areas: List[str] = Field(default_factory=list)
    last_updated: str = ""
    history: List[MemoryEntry] = Field(default_factory=list)


class StudentMemoryArchive(CamelModel):
    """Immutable per-run snapshot of a student's memory."""
    run_id: str
    student_id: str
    created_at: str
    summary: str
    strengths: List[str] = Field(default_factory=list)
    improvement_areas: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)


class ClassMemoryArchive(CamelModel):
    """Immutable per-run snapshot of the class insight."""
    run_id: str
    created_at: str
    summary: str
    strengths: List[str] = Field(default_factory=list)
    attention_needed: List[AttentionItem] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
