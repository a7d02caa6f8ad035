"""
Coaching insights FastAPI application.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import chat, health, runs, students
from src.core.pipeline import InsightPipeline, create_pipeline
from src.core.prompt.chat import ChatAgent
from src.shared.config import settings
from src.shared.llm import LLMClient, LLMError
from src.shared.logging import get_logger

logger = get_logger(__name__)

# Body validation messages for routes that define their own
BODY_ERROR_MESSAGES = {
    "/analyze": "Invalid analysis request",
    "/chat": "Invalid chat request",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting coaching insights API")

    # A pipeline injected by create_app (tests) wins over the configured one
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = create_pipeline()

    if getattr(app.state, "chat_agent", None) is None:
        try:
            app.state.chat_agent = ChatAgent(LLMClient(config=app.state.pipeline.config.llm))
        except LLMError as e:
            logger.warning(f"Chat disabled: {e}")
            app.state.chat_agent = None

    # Track uptime
    health.set_start_time(time.time())

    logger.info("Coaching insights API ready")
    yield

    active = app.state.pipeline.active_run_id()
    if active:
        logger.warning(f"Shutting down with run {active} still in progress")
    logger.info("Coaching insights API stopped")


def create_app(
    pipeline: Optional[InsightPipeline] = None,
    chat_agent: Optional[ChatAgent] = None,
) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Coaching Insights",
        description="Student coaching insights with longitudinal memory and run auditing",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.chat_agent = chat_agent

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        """Malformed request bodies get a 400 with a short error message."""
        errors = exc.errors()
        if any(err.get("type") == "json_invalid" for err in errors):
            return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})
        if any(tuple(err.get("loc", ()))[:1] == ("body",) for err in errors):
            message = BODY_ERROR_MESSAGES.get(request.url.path, "Invalid request body")
            return JSONResponse(status_code=400, content={"error": message})
        return await request_validation_exception_handler(request, exc)

    # Routes
    app.include_router(health.router)
    app.include_router(runs.router)
    app.include_router(students.router)
    app.include_router(chat.router)

    @app.get("/")
    async def root():
        return {"service": "coaching-insights", "status": "running"}

    return app


app = create_app()


def main():
    """CLI entry point for uvicorn."""
    import uvicorn

    uvicorn.run(
        "src.api.app:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
