"""
FastAPI dependency injection for coaching services.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from src.audit.store import AuditStore
from src.core.pipeline import InsightPipeline
from src.core.prompt.chat import ChatAgent
from src.memory.store import MemoryStore
from src.shared.config import CoachSettings


def get_pipeline(request: Request) -> InsightPipeline:
    """Get InsightPipeline singleton from lifespan state."""
    return request.app.state.pipeline


def get_audit_store(request: Request) -> AuditStore:
    """Get AuditStore from the pipeline in lifespan state."""
    return request.app.state.pipeline.audit


def get_memory_store(request: Request) -> MemoryStore:
    """Get MemoryStore from the pipeline in lifespan state."""
    return request.app.state.pipeline.memory


def get_config(request: Request) -> CoachSettings:
    return request.app.state.pipeline.config


def get_chat_agent(request: Request) -> Optional[ChatAgent]:
    """Get ChatAgent from lifespan state; None when no LLM is configured."""
    return getattr(request.app.state, "chat_agent", None)


PipelineDep = Annotated[InsightPipeline, Depends(get_pipeline)]
AuditStoreDep = Annotated[AuditStore, Depends(get_audit_store)]
MemoryStoreDep = Annotated[MemoryStore, Depends(get_memory_store)]
ConfigDep = Annotated[CoachSettings, Depends(get_config)]
ChatAgentDep = Annotated[Optional[ChatAgent], Depends(get_chat_agent)]
