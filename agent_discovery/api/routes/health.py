"""
Health Check API Routes
System health and status endpoints
"""
from fastapi import APIRouter

from agent_discovery.core.config import get_settings
from agent_discovery.services.llm_provider import DisabledCompletionService, get_completion_service

router = APIRouter(tags=["Health"])

settings = get_settings()


@router.get("/health")
async def health_check():
    """
    Detailed health check endpoint

    Returns system status and component health
    """
    completion = get_completion_service()
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "components": {
            "discovery_service": "ok",
            "completion_service": "disabled" if isinstance(completion, DisabledCompletionService) else "ok",
        },
        "llm_provider": settings.LLM_PROVIDER,
    }


@router.get("/ping")
async def ping():
    """
    Simple ping endpoint for load balancers
    """
    return {"status": "ok"}
