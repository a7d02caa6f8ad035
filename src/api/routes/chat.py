"""
Role-aware chat endpoint.

Role rules are enforced before any memory or student lookup:
admins see system status only, teachers must name a known student,
students are resolved by studentId or, failing that, their userId.
"""

from pathlib import Path
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from src.api.dependencies import ChatAgentDep, PipelineDep
from src.core.models import CamelModel, Student
from src.core.pipeline import load_students_raw
from src.core.prompt.chat import (
    ChatContext,
    build_student_memory_summary,
    build_system_summary,
    compute_usage_cost,
)
from src.core.validator import validate_students
from src.shared.exceptions import InputShapeError
from src.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["chat"])


class ChatRequest(CamelModel):
    session_id: Optional[str] = None
    user_id: str
    role: Literal["student", "teacher", "admin"]
    message: str
    student_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


class ChatUsage(CamelModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: Optional[float] = None


class ChatResponse(CamelModel):
    reply: str
    memory_updated: bool = False
    run_id: Optional[str] = None
    usage: Optional[ChatUsage] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _student_index(students_path: Path) -> Dict[str, Student]:
    """Valid students by id; empty when the input file is unusable."""
    try:
        raw = load_students_raw(students_path)
    except InputShapeError as e:
        logger.warning(f"Failed to load student list for chat personalization: {e}")
        return {}

    report = validate_students(raw)
    if report.errors:
        logger.warning(f"Student list has {len(report.errors)} validation warning(s)")
    return {s.id: s for s in report.valid}


@router.post("/chat")
async def chat(body: ChatRequest, pipeline: PipelineDep, agent: ChatAgentDep):
    """Answer one chat message for a student, teacher or admin."""
    if body.role == "admin" and body.student_id:
        return _error(400, "Admin role cannot request student-specific data")
    if agent is None:
        return _error(503, "Chat is unavailable: no LLM configured")

    config = pipeline.config
    try:
        context = ChatContext(role=body.role, message=body.message, teacher_rules=pipeline.preferences)

        if body.role == "admin":
            context.system_summary = build_system_summary(config, pipeline.audit.list_runs(5))
            context.teacher_rules = None
        else:
            if body.role == "teacher":
                if not body.student_id:
                    return _error(400, "Teacher role requires studentId for student-specific guidance")
                student_id = body.student_id
            else:
                student_id = body.student_id or body.user_id

            student = _student_index(Path(config.pipeline.students_json_path)).get(student_id)
            if student is None:
                return _error(400, f"Unknown studentId for {body.role} request")

            context.memory_summary = build_student_memory_summary(pipeline.memory.load_student(student_id))
            context.student_name = student.name

        result = await agent.reply(context)
    except Exception as e:
        logger.error(f"Chat request failed: {e}")
        return _error(500, "Chat request failed")

    usage = None
    if result.usage is not None:
        usage = ChatUsage(
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            total_tokens=result.usage.total_tokens,
            cost_usd=compute_usage_cost(
                result.usage, config.llm.price_input_per_1k, config.llm.price_output_per_1k,
            ),
        )
    response = ChatResponse(reply=result.content, usage=usage)
    return response.model_dump(by_alias=True, exclude_none=True)
