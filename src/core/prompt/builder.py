"""
Prompt builder and insight agent: turns analyses plus memory into LLM calls.

The agent only ever returns raw text. Contract checks and fallbacks happen in
the pipeline, so nothing here needs to trust the model.
"""

import json
from typing import Any, Dict, Optional, Tuple, Union

from src.core.models import ClassSummary, StudentAnalysis, TeacherPreferences
from src.memory.models import ClassMemory, StudentMemory
from src.shared.llm import LLMClient
from src.shared.logging import get_logger

logger = get_logger(__name__)

NONE_MARKER = "None"

TONE_PHRASES = {
    "warm": "a warm, encouraging, growth-mindset tone",
    "neutral": "a calm, neutral and factual tone",
    "direct": "a direct, concise and practical tone",
}

STUDENT_SYSTEM_PROMPT = (
    "You are an educational coach writing for a student. Use {tone} grounded in the "
    "analysis, memory and teacher notes. Return ONLY valid JSON with fields: "
    "positiveObservation (string), strengths (array of 1-3 strings), improvementAreas "
    "(array of 1-2 strings), strategies (array of 2-3 strings), nextStepGoal (string), "
    "encouragement (string). Avoid raw scores, sensitive labels, or mention of JSON."
)

CLASS_SYSTEM_PROMPT = (
    "You are an educational coach preparing a class summary for the teacher. Use a "
    "supportive, solution-oriented tone and reference memory where relevant. Return ONLY "
    "valid JSON with fields: classOverview (string), strengths (array of 1-4 strings), "
    "attentionNeeded (array of objects with name and reason), nextSteps (array of 2-4 "
    "strings). Avoid raw scores or shaming language."
)


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def reduce_student_memory(memory: Optional[StudentMemory]) -> Union[Dict[str, Any], str]:
    """Keep only the memory fields that should steer the next insight."""
    if memory is None or (not memory.summary and not memory.strengths and not memory.goals):
        return NONE_MARKER
    return {
        "summary": memory.summary,
        "strengths": memory.strengths,
        "improvementAreas": memory.improvement_areas,
        "goals": memory.goals,
        "lastUpdated": memory.last_updated,
    }


def reduce_class_memory(memory: Optional[ClassMemory]) -> Union[Dict[str, Any], str]:
    if memory is None or (not memory.summary and not memory.class_goals and not memory.focus_areas):
        return NONE_MARKER
    return {
        "summary": memory.summary,
        "classGoals": memory.class_goals,
        "focusAreas": memory.focus_areas,
        "lastUpdated": memory.last_updated,
    }


class PromptBuilder:
    """Build system and user prompts for student and class insights."""

    def __init__(self, preferences: Optional[TeacherPreferences] = None, max_chars_per_section: int = 8000):
        self.preferences = preferences
        self.max_chars_per_section = max_chars_per_section

    def _truncate(self, text: str) -> str:
        """Keep head and tail of an over-long section."""
        if len(text) <= self.max_chars_per_section:
            return text
        head_chars = self.max_chars_per_section // 2
        tail_chars = self.max_chars_per_section - head_chars - 50
        return text[:head_chars] + "\n\n[... content truncated ...]\n\n" + text[-tail_chars:]

    def _preferences_json(self) -> str:
        if self.preferences is None:
            return NONE_MARKER
        return self._truncate(_dump(self.preferences.model_dump(by_alias=True, exclude_none=True)))

    def student_prompts(
        self,
        analysis: StudentAnalysis,
        memory: Optional[StudentMemory] = None,
    ) -> Tuple[str, str]:
        """
        Build prompts for one student's insight.

        Returns:
            (system_prompt, user_prompt)
        """
        tone = (self.preferences.tone if self.preferences else None) or "warm"
        system_prompt = STUDENT_SYSTEM_PROMPT.format(tone=TONE_PHRASES[tone])

        user_prompt = "\n\n".join([
            f"Student analysis JSON:\n{self._truncate(_dump(analysis.model_dump(mode='json', by_alias=True)))}",
            f"Student memory JSON:\n{_dump(reduce_student_memory(memory))}",
            f"Teacher preferences JSON:\n{self._preferences_json()}",
            "Return ONLY the JSON object.",
        ])
        return system_prompt, user_prompt

    def class_prompts(
        self,
        summary: ClassSummary,
        memory: Optional[ClassMemory] = None,
    ) -> Tuple[str, str]:
        """Build prompts for the class summary insight."""
        user_prompt = "\n\n".join([
            f"Class summary JSON:\n{self._truncate(_dump(summary.model_dump(mode='json', by_alias=True)))}",
            f"Class memory JSON:\n{_dump(reduce_class_memory(memory))}",
            f"Teacher preferences JSON:\n{self._preferences_json()}",
            "Return ONLY the JSON object.",
        ])
        return CLASS_SYSTEM_PROMPT, user_prompt


class InsightAgent:
    """LLM-backed generator of raw insight text."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        preferences: Optional[TeacherPreferences] = None,
    ):
        self.llm = llm_client or LLMClient()
        self.prompts = PromptBuilder(preferences)

    async def generate_student_insight(
        self,
        analysis: StudentAnalysis,
        memory: Optional[StudentMemory] = None,
    ) -> str:
        system_prompt, prompt = self.prompts.student_prompts(analysis, memory)
        logger.debug(f"Generating student insight for {analysis.student.id}")
        return await self.llm.get_completion(prompt=prompt, system_prompt=system_prompt)

    async def generate_class_insight(
        self,
        summary: ClassSummary,
        memory: Optional[ClassMemory] = None,
    ) -> str:
        system_prompt, prompt = self.prompts.class_prompts(summary, memory)
        logger.debug("Generating class insight")
        return await self.llm.get_completion(prompt=prompt, system_prompt=system_prompt)
