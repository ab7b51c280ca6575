"""
D-Line Tracker API Server

FastAPI server for recording defensive matchups, break statistics and live
game collaboration.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore
from slowapi.middleware import SlowAPIMiddleware  # type: ignore
from sqlalchemy.exc import IntegrityError

from dline.api.routes import router, limiter as routes_limiter, IS_TEST_ENV
from dline.api.public_routes import public_router
from dline.database import db
from dline.models.schemas import HealthResponse
from dline.services.game_room_manager import get_game_room_manager, WEBSOCKET_TIMEOUT_SECONDS
from dline.services.redis_service import close_redis_connection
from dline.utils.datetime_utils import isoformat, utcnow
from dline.utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

IS_DEVELOPMENT = os.getenv("ENV", "").lower() == "development"


async def _sweep_stale_sockets():
    """Periodically drop sockets that stopped sending heartbeats."""
    manager = get_game_room_manager()
    while True:
        await asyncio.sleep(WEBSOCKET_TIMEOUT_SECONDS)
        try:
            await manager.cleanup_stale_connections()
        except Exception as e:
            logger.error(f"Error cleaning up stale sockets: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up D-Line Tracker API...")

    # Create tables that migrations have not created yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    sweeper = asyncio.create_task(_sweep_stale_sockets())

    yield  # App is running

    logger.info("Shutting down D-Line Tracker API...")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper

    try:
        await close_redis_connection()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)

    await db.dispose_engine()


app = FastAPI(
    title="D-Line Tracker API",
    description="API for tracking defensive matchups and break percentages in ultimate",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
if not IS_TEST_ENV:
    app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Validation error", "details": details})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=409, content={"detail": "Conflicts with existing data"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    detail = str(exc) if IS_DEVELOPMENT else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": detail})


# Include API routes
app.include_router(router)
app.include_router(public_router)


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": isoformat(utcnow())}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
