"""
FastAPI runner service for automation research.

Builds one ResearchOrchestrator at startup (backends chosen once from the
environment) and exposes it through the research routes. Expected errors
become JSON error bodies; quota rejections carry a Retry-After header.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.common.config import Config
from src.common.errors import AdmissionDenied, ResearchError, ValidationError, error_response
from src.common.logger import setup_logging
from src.services.evidence_collector import EvidenceCollector, StaticEvidenceCollector
from src.services.research_orchestrator import ResearchOrchestrator

from .config import RunnerSettings, validate_config_on_startup
from .models import HealthResponse
from .routes import research_router

logger = logging.getLogger(__name__)


def _error_json(error: BaseException) -> JSONResponse:
    status_code, body = error_response(error)
    headers = None
    if isinstance(error, AdmissionDenied):
        headers = {"Retry-After": str(error.retry_after_seconds)}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def create_app(
    orchestrator: Optional[ResearchOrchestrator] = None,
    collector: Optional[EvidenceCollector] = None,
    config: Optional[Config] = None,
    settings: Optional[RunnerSettings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator (tests); built from config when None
        collector: Evidence collector for the built orchestrator
        config: Research configuration; Config.from_env() when None
        settings: HTTP settings; validated from the environment when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = False
        if getattr(app.state, "orchestrator", None) is None:
            research_config = config or Config.from_env()
            setup_logging(research_config.log_level, research_config.log_format)
            app.state.orchestrator = ResearchOrchestrator.from_config(
                research_config, collector or StaticEvidenceCollector()
            )
            owned = True
        logger.info("Research service started")
        try:
            yield
        finally:
            if owned:
                await app.state.orchestrator.close()
                app.state.orchestrator = None
            logger.info("Research service stopped")

    runner_settings = settings or validate_config_on_startup()
    app = FastAPI(
        title="Automation Research Service",
        version=runner_settings.api_version,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    if runner_settings.cors_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=runner_settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(research_router)

    @app.exception_handler(ResearchError)
    async def research_error_handler(request: Request, exc: ResearchError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
        return _error_json(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        messages = [str(err.get("msg", "")) for err in exc.errors()]
        return _error_json(ValidationError("Invalid request", details=messages))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return _error_json(exc)

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint for container orchestration."""
        current: ResearchOrchestrator = request.app.state.orchestrator
        return HealthResponse(
            status="healthy",
            version=runner_settings.api_version,
            cache_backend=current.cache.backend,
            capability_enabled=current.pipeline.capability is not None,
            timestamp=datetime.now(timezone.utc),
        )

    return app


app = create_app()
