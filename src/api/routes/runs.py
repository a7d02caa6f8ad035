"""
Run trigger and run history endpoints.
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.api.dependencies import AuditStoreDep, PipelineDep
from src.audit.models import RunRecord
from src.shared.exceptions import RunInProgressError
from src.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)

router = APIRouter(tags=["runs"])


class AnalyzeRequest(BaseModel):
    """Run trigger body. Only whole-class runs are supported."""

    scope: Literal["all", "student"] = "all"
    student_id: Optional[str] = None


class AnalyzeResponse(BaseModel):
    run_id: Optional[str] = None
    status: str


class HistoryResponse(BaseModel):
    runs: List[RunRecord]


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(pipeline: PipelineDep, body: Optional[AnalyzeRequest] = None):
    """
    Trigger one pipeline run and wait for it.

    Returns 409 with the in-flight run id when a run is already active.
    """
    body = body or AnalyzeRequest()
    if body.scope == "student":
        return JSONResponse(
            status_code=400,
            content={"error": "Per-student runs are not supported; use scope 'all'"},
        )

    try:
        result = await pipeline.run_once()
    except RunInProgressError as e:
        return JSONResponse(status_code=409, content={"run_id": e.run_id, "status": "running"})
    except Exception as e:
        log_with_context(
            logger, logging.ERROR, f"Triggered run failed: {e}",
            run_id=pipeline.last_run_id, action="analyze",
        )
        return JSONResponse(
            status_code=500,
            content={"run_id": pipeline.last_run_id, "status": "failed"},
        )

    return AnalyzeResponse(run_id=result.run_id, status=result.status.value)


@router.get("/history", response_model=HistoryResponse)
async def history(audit_store: AuditStoreDep, limit: int = Query(default=25, ge=1, le=500)):
    """Most recent runs, newest first."""
    return HistoryResponse(runs=audit_store.list_runs(limit=limit))
