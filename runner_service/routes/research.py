"""
Research Routes

Caller-facing API over the ResearchOrchestrator.

Endpoints:
    POST /api/research   - Opportunity search (keywords) or deep research (company)
    GET  /api/research   - Endpoint description
    GET  /api/status     - Tenant quota and cache status
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from src.services.research_orchestrator import ResearchOrchestrator

from ..models import ANONYMOUS_TENANT, ResearchRequestModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["research"])


def get_orchestrator(request: Request) -> ResearchOrchestrator:
    """Orchestrator built by the app lifespan."""
    return request.app.state.orchestrator


@router.post("/research")
async def run_research(
    body: ResearchRequestModel,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """
    Run an opportunity search or a deep-research pass.

    Errors (validation, quota, evidence, timeout) are mapped to JSON error
    bodies by the app's exception handlers.
    """
    request = body.to_request()
    if body.is_search:
        result = await orchestrator.search_opportunities(request)
    else:
        result = await orchestrator.run_deep_research(request)
    return {"success": True, "data": result.to_dict()}


@router.get("/research")
async def describe_research() -> Dict[str, Any]:
    """Describe the research endpoint's modes and request shape."""
    return {
        "endpoint": "/api/research",
        "method": "POST",
        "modes": {
            "opportunity-search": {
                "description": "Find companies hiring for automatable roles and analyze the top ones",
                "required": ["keywords"],
                "optional": ["location", "notes", "clientId", "forceRefresh"],
            },
            "deep-research": {
                "description": "Analyze one company's automation potential",
                "required": ["companyName or companyUrl"],
                "optional": ["notes", "clientId", "forceRefresh"],
            },
        },
        "rateLimits": "Per-client daily and concurrency quotas; see /api/status",
    }


@router.get("/status")
async def get_status(
    x_client_id: Optional[str] = Header(None, alias="X-Client-ID"),
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Quota and cache status for the calling tenant; 503 when degraded."""
    tenant_id = (x_client_id or "").strip() or ANONYMOUS_TENANT
    status = await orchestrator.get_status(tenant_id)
    status_code = 503 if status.get("status") == "degraded" else 200
    return JSONResponse(status_code=status_code, content=status)
