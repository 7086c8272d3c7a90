"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, HTTPException

from civic_pulse.core.errors import CivicPulseError
from civic_pulse.core.settings import settings
from civic_pulse.services.storage import get_issue_store
from civic_pulse.utils.timeutils import utcnow

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/db")
def database_health():
    """
    Store connectivity check.
    Performs a lightweight read against the active backend.
    """
    backend = "memory" if settings.USE_MOCK_DB else "firestore"
    try:
        get_issue_store().ping()
    except (CivicPulseError, RuntimeError) as e:
        raise HTTPException(status_code=503, detail=f"Database connection failed: {e}")

    return {
        "status": "healthy",
        "database": backend,
        "connected": True,
        "timestamp": utcnow().isoformat(),
    }
