"""
Role-aware chat agent for interactive questions.

Unlike InsightAgent, replies are free-form text. Each role gets its own
prompt so a student never sees teacher guidance and an admin never sees
student data.
"""

import json
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Tuple

from src.audit.models import RunRecord
from src.core.models import TeacherPreferences
from src.memory.models import StudentMemory
from src.shared.config import CoachSettings
from src.shared.llm import LLMClient, TokenUsage
from src.shared.logging import get_logger

logger = get_logger(__name__)

ChatRole = Literal["student", "teacher", "admin"]

CHAT_TEMPERATURE = 0.7

STUDENT_CHAT_PROMPT = (
    "You are an educational assistant writing directly to a student. Be supportive, specific, "
    "and concise. Always refer to the student by name (use the provided name). Do not include "
    'sign-offs, signatures, or placeholders like "[Your Name]". Use memory context if provided, '
    "but do not mention it explicitly. Avoid raw grades or private data."
)

TEACHER_CHAT_PROMPT = (
    "You are an educational assistant writing directly to a teacher about a student. Provide "
    "student-focused guidance and classroom coaching strategies, and address the teacher (not "
    'the student). Avoid second-person pronouns like "you" or "your". Always refer to the student '
    "by name (use the provided name) in third person. Do not include sign-offs, signatures, or "
    'placeholders like "[Your Name]". Use memory context if provided, but do not mention it '
    "explicitly. Avoid raw grades or private data. Do not discuss system configuration or run "
    "status. Format the response with these labeled sections:\n"
    "- Student Overview\n"
    "- Strengths\n"
    "- Growth Areas\n"
    "- Next Steps\n"
    "- In-class Strategy\n"
    "- Family/Guardian Note (optional)"
)

ADMIN_CHAT_PROMPT = (
    "You are a system operations assistant for the coaching service. Only discuss system health, "
    "configuration, scheduling, and recent run status. Do not discuss individual students or "
    "student performance. If asked about students, explain that admin access is limited to "
    "system status."
)


@dataclass
class ChatContext:
    """Everything one chat reply may draw on."""
    role: ChatRole
    message: str
    memory_summary: Optional[str] = None
    teacher_rules: Optional[TeacherPreferences] = None
    student_name: Optional[str] = None
    system_summary: Optional[str] = None


@dataclass
class ChatReply:
    content: str
    usage: Optional[TokenUsage] = None


def build_student_memory_summary(memory: StudentMemory) -> str:
    """Compress student memory into one line for chat prompts."""
    parts = [
        memory.summary,
        f"Strengths: {', '.join(memory.strengths)}" if memory.strengths else "",
        f"Focus: {', '.join(memory.improvement_areas)}" if memory.improvement_areas else "",
        f"Goals: {', '.join(memory.goals)}" if memory.goals else "",
    ]
    return " | ".join(p for p in parts if p)


def build_system_summary(config: CoachSettings, runs: Iterable[RunRecord]) -> str:
    """Model, schedule and latest run status, with no student data."""
    latest = next(iter(runs), None)
    if latest is None:
        latest_summary = "No runs recorded yet."
    else:
        latest_summary = (
            f"Last run {latest.status} at {latest.started_at} "
            f"({latest.valid_student_count}/{latest.student_count} valid)."
        )
    return " | ".join([
        f"Model: {config.llm.default_model}",
        f"Schedule: Interval: {config.pipeline.schedule_interval_minutes} min",
        f"History DB: {config.pipeline.history_db_path}",
        latest_summary,
    ])


def compute_usage_cost(
    usage: Optional[TokenUsage],
    input_rate: Optional[float],
    output_rate: Optional[float],
) -> Optional[float]:
    """Estimated USD cost, or None when usage or either rate is unknown."""
    if usage is None or input_rate is None or output_rate is None:
        return None
    cost = (usage.input_tokens / 1000) * input_rate + (usage.output_tokens / 1000) * output_rate
    return round(cost, 6)


def _text(value: Optional[str], default: str) -> str:
    value = (value or "").strip()
    return value or default


class ChatAgent:
    """LLM-backed chat with one prompt per role."""

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client or LLMClient()

    def prompts(self, context: ChatContext) -> Tuple[str, str]:
        """(system_prompt, user_prompt) for the context's role."""
        memory_summary = _text(context.memory_summary, "None")
        student_name = _text(context.student_name, "Unknown")
        teacher_rules = (
            json.dumps(context.teacher_rules.model_dump(by_alias=True, exclude_none=True), indent=2)
            if context.teacher_rules else "None"
        )

        if context.role == "admin":
            return ADMIN_CHAT_PROMPT, (
                f"System Summary: {_text(context.system_summary, 'None')}\n\n"
                f"User Message: {context.message}"
            )
        if context.role == "teacher":
            return TEACHER_CHAT_PROMPT, (
                f"Student Name: {student_name}\n"
                f"Memory Summary: {memory_summary}\n"
                f"Teacher Preferences: {teacher_rules}\n\n"
                f"Teacher Message: {context.message}"
            )
        return STUDENT_CHAT_PROMPT, (
            f"Role: {context.role}\n"
            f"Student Name: {student_name}\n"
            f"Memory Summary: {memory_summary}\n"
            f"Teacher Preferences: {teacher_rules}\n\n"
            f"User Message: {context.message}"
        )

    async def reply(self, context: ChatContext) -> ChatReply:
        system_prompt, prompt = self.prompts(context)
        logger.debug(f"Generating chat reply for role {context.role}")
        result = await self.llm.complete(
            prompt=prompt, system_prompt=system_prompt, temperature=CHAT_TEMPERATURE,
        )
        return ChatReply(content=result.content, usage=result.usage)
