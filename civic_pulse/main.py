"""
Civic Pulse - FastAPI Application Entry Point

A civic-issue reporting backend: citizens report location-tagged issues,
vote and chat on them; government users triage, assign and resolve them.

DESIGN PRINCIPLES:
- Repeat reports of the same problem fold into one canonical issue
- Priority is system-derived unless a government user pins it
- Every status change is recorded and notified to the reporter
- Real-time events are best effort and never fail a request
"""

import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from civic_pulse.config.firebase import initialize_firestore
from civic_pulse.core.errors import CivicPulseError, PersistenceFailure
from civic_pulse.core.logging import setup_logging
from civic_pulse.core.settings import settings
from civic_pulse.routes import chat, health, issues, realtime
from civic_pulse.services.realtime import get_publisher

setup_logging()
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Civic issue reporting with duplicate clustering, priority derivation and status workflow",
    debug=settings.DEBUG,
)


@app.exception_handler(CivicPulseError)
async def civic_pulse_error_handler(request: Request, exc: CivicPulseError):
    """Render expected domain failures as {"success": false, "error", "message"}."""
    if isinstance(exc, PersistenceFailure):
        logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc.cause or exc.message}")
        message = "A storage error occurred. Please try again later."
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        message = exc.message

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error, "message": message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Keep the failure envelope for framework-raised HTTP errors (401, 404 routes, 405)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "message": "An unexpected error occurred",
        },
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log request validation errors and return them with the 422 status."""
    logger.info(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation failed",
            "message": "Request body or parameters are invalid",
            "detail": exc.errors(),
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    Currently: Firestore connection and the real-time event loop binding.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    get_publisher().bind_loop(asyncio.get_running_loop())

    if settings.USE_MOCK_DB:
        logger.info("USE_MOCK_DB=true: using the in-process store")
        return

    try:
        initialize_firestore()
    except Exception as e:
        logger.warning(f"Firestore initialization failed: {e}")
        logger.warning("The app will start but database operations may fail.")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    get_publisher().bind_loop(None)
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(issues.router)
app.include_router(chat.router)
app.include_router(realtime.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "issues": "/api/issues",
        "events": "/ws",
    }
