"""Health check endpoints"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.database import get_db
from oeapp.models.cleaning_request import PENDING_APPROVAL, CleaningRequest

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "oeapp-approvals",
        "version": "0.1.0",
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/ready")
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """
    Readiness check - verifies dependencies are available

    Checks:
    - Database connectivity and latency
    - Notification worker (when notifications are queued)

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks: Dict[str, Any] = {
        "database": False,
        "database_latency_ms": None,
        "mail_backend": settings.MAIL_BACKEND,
    }

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        checks["database"] = True
        checks["database_latency_ms"] = round(latency_ms, 2)
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": f"Database check failed: {str(e)}"
            },
        )

    outbound = getattr(request.app.state, "outbound", None)
    checks["notification_worker"] = bool(outbound and (outbound.synchronous or outbound.is_running))

    if latency_ms > 1000:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "degraded",
                "checks": checks,
                "message": "Database latency is high"
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by Kubernetes liveness probe
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/stats")
def health_stats(db: Session = Depends(get_db)):
    """Request counts, database latency and uptime"""
    try:
        total_requests = db.query(CleaningRequest).count()
        pending_requests = (
            db.query(CleaningRequest)
            .filter(CleaningRequest.overall_status == PENDING_APPROVAL)
            .count()
        )

        db_start = time.time()
        db.execute(text("SELECT 1"))
        db_latency_ms = (time.time() - db_start) * 1000

        return {
            "status": "healthy",
            "requests": {
                "total": total_requests,
                "pending": pending_requests
            },
            "database": {
                "connected": True,
                "latency_ms": round(db_latency_ms, 2)
            },
            "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
            "timestamp": datetime.utcnow().isoformat()
        }

    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "error",
                "message": str(e),
                "timestamp": datetime.utcnow().isoformat()
            },
        )
