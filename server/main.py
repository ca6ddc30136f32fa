"""
FastAPI Main Application
========================

Long-lived evaluation service for hosts that prefer an HTTP call over
spawning a hook process per command. One rule catalog is built at startup
and reused across all requests; evaluations share it read-only.

Run with:
    uvicorn server.main:app --host 127.0.0.1 --port 8765
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routers import evaluate_router
from security import get_engine
from env_constants import ALLOW_REMOTE_ENV_VAR

# Module logger
logger = logging.getLogger(__name__)

# Check if remote access is enabled via environment variable
ALLOW_REMOTE = os.environ.get(ALLOW_REMOTE_ENV_VAR, "").lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine once at startup."""
    app.state.engine = get_engine()
    logger.info(
        "Session guard service ready: catalog v%s, %d categories",
        app.state.engine.catalog.version,
        len(app.state.engine.catalog),
    )
    yield


# Create FastAPI app
app = FastAPI(
    title="Session Guard",
    description="Pre-execution safety gate for agent shell commands",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.allow_remote = ALLOW_REMOTE

if ALLOW_REMOTE:
    logger.warning(
        "ALLOW_REMOTE is enabled. The evaluation API is reachable from other machines. "
        "Only use this in trusted network environments."
    )


# ============================================================================
# Security Middleware
# ============================================================================

@app.middleware("http")
async def require_localhost(request: Request, call_next):
    """Only allow requests from localhost (disabled when SESSION_GUARD_ALLOW_REMOTE=1)."""
    if request.app.state.allow_remote:
        return await call_next(request)

    client_host = request.client.host if request.client else None
    if client_host not in ("127.0.0.1", "::1", "localhost", None):
        return JSONResponse(status_code=403, content={"detail": "Localhost access only"})

    return await call_next(request)


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(evaluate_router)


# ============================================================================
# Health Endpoint
# ============================================================================

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server.main:app",
        host="127.0.0.1",  # Localhost only for security
        port=8765,
    )
