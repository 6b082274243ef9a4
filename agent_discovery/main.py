"""
Agent Discovery API
FastAPI application exposing the conversational discovery engine

Architecture:
- Service Layer: DiscoveryService wires the engine
- External APIs: /discovery turn and session endpoints, /health
"""
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from agent_discovery.api.routes import health, discovery
from agent_discovery.core.config import get_settings
from agent_discovery.core.logging import setup_logging, get_logger
from agent_discovery.services.discovery_service import get_discovery_service

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Get settings
settings = get_settings()


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the session eviction task; cancel it on shutdown"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"LLM provider: {settings.LLM_PROVIDER} ({settings.DEFAULT_LLM_MODEL})")

    eviction_task = asyncio.create_task(get_discovery_service().run_eviction_loop())
    try:
        yield
    finally:
        eviction_task.cancel()
        try:
            await eviction_task
        except asyncio.CancelledError:
            pass
        logger.info(f"Shutting down {settings.APP_NAME}")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Conversational requirements discovery for AI agent configurations",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# CUSTOM EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Custom handler for request validation errors
    Provides clearer error messages for API consumers
    """
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(x) for x in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "message": "Request validation failed. Please check the required fields and formats.",
            "details": errors
        }
    )


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(health.router)
app.include_router(discovery.router)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with API information"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": [
            "/health",
            "/ping",
            "/discovery/turn",
            "/discovery/sessions",
            "/discovery/sessions/{session_id}",
            "/discovery/sessions/{session_id}/reset",
            "/discovery/agents/{agent_id}"
        ]
    }


# ============================================================================
# MAIN (for running directly)
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agent_discovery.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
