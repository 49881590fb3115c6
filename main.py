"""
TNUA Backend API
Real-time pose stream engine

FastAPI application entry point: workout sessions over REST and WebSocket.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)]
)

from core.websocket import connection_manager
from session_service.models import get_session_registry
from session_service.router import evict_idle_sessions, router as session_router
from shared.utils import setup_logger

logger = setup_logger("tnua.main", level=settings.LOG_LEVEL)
request_logger = logging.getLogger("tnua.requests")


# ============================================
# Request Logging Middleware
# ============================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests and responses with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        query_string = f"?{request.url.query}" if request.url.query else ""
        request_logger.debug(f"➡️  {request.method} {request.url.path}{query_string}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            request_logger.error(
                f"💥 {request.method} {request.url.path} → ERROR: {type(e).__name__}: {e} ({process_time:.1f}ms)"
            )
            raise

        process_time = (time.time() - start_time) * 1000
        if response.status_code < 300:
            status_emoji = "✅"
        elif response.status_code < 400:
            status_emoji = "↪️"
        elif response.status_code < 500:
            status_emoji = "⚠️"
        else:
            status_emoji = "❌"

        request_logger.info(
            f"{status_emoji} {request.method} {request.url.path} → {response.status_code} ({process_time:.1f}ms)"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    logger.info(f"🚀 {settings.APP_NAME} API starting up...")

    await connection_manager.start_heartbeat(on_tick=evict_idle_sessions)

    logger.info(f"✅ {settings.APP_NAME} API ready!")

    yield

    logger.info(f"👋 {settings.APP_NAME} API shutting down...")
    await connection_manager.stop_heartbeat()
    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="TNUA API",
    description="Real-time pose stream engine: exercise recognition, rep counting and emergency detection",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "tnua-api",
        "sessions": len(get_session_registry()),
        "websocket_connections": connection_manager.connection_count
    }


@app.get("/stats")
async def get_stats():
    """Get service statistics."""
    return {
        "websocket": connection_manager.get_stats(),
        "sessions": get_session_registry().list_sessions(),
    }


app.include_router(session_router, prefix="/api/sessions", tags=["Sessions"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
