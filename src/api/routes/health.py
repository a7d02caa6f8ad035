"""
Health check and configuration endpoints.
"""

import time
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from src.api.dependencies import AuditStoreDep, ConfigDep, PipelineDep
from src.audit.models import RunRecord

router = APIRouter(tags=["health"])

# Track startup time for uptime
_start_time: Optional[float] = None


def set_start_time(t: float):
    """Set application start time."""
    global _start_time
    _start_time = t


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    run_in_progress: bool
    active_run_id: Optional[str] = None
    last_run: Optional[RunRecord] = None
    llm_configured: bool
    uptime_seconds: float


class ConfigResponse(BaseModel):
    """Secret-free view of the running configuration."""

    llm_provider: str
    llm_model: str
    schedule_interval_minutes: int
    memory_dir: str
    memory_history_limit: int
    students_json_path: str
    preferences_path: Optional[str] = None
    history_db_path: str
    outbox_dir: Optional[str] = None
    api_host: str
    api_port: int
    cors_origins: List[str]


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: PipelineDep, audit_store: AuditStoreDep):
    """
    Service health check.
    Returns run state, the most recent run, LLM availability and uptime.
    """
    active = pipeline.active_run_id()
    runs = audit_store.list_runs(limit=1)

    uptime_seconds = 0.0
    if _start_time:
        uptime_seconds = round(time.time() - _start_time, 2)

    return HealthResponse(
        status="ok",
        run_in_progress=active is not None,
        active_run_id=active,
        last_run=runs[0] if runs else None,
        llm_configured=pipeline.agent is not None,
        uptime_seconds=uptime_seconds,
    )


@router.get("/config", response_model=ConfigResponse)
async def get_config_view(config: ConfigDep):
    """Configuration without API keys or other secrets."""
    pipeline = config.pipeline
    return ConfigResponse(
        llm_provider=config.llm.provider,
        llm_model=config.llm.default_model,
        schedule_interval_minutes=pipeline.schedule_interval_minutes,
        memory_dir=str(config.memory.memory_dir),
        memory_history_limit=config.memory.history_limit,
        students_json_path=str(pipeline.students_json_path),
        preferences_path=str(pipeline.preferences_path) if pipeline.preferences_path else None,
        history_db_path=str(pipeline.history_db_path),
        outbox_dir=str(pipeline.outbox_dir) if pipeline.outbox_dir else None,
        api_host=config.api.host,
        api_port=config.api.port,
        cors_origins=config.api.cors_origins,
    )
