"""
Health check routes.
Probes for load-balancer liveness and readiness; exempt from rate limiting.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import func, select, text
from datetime import datetime, timezone
import time
import logging

from natours.core.rate_limiting import limiter
from natours.db.database import get_db
from natours.db.models import Tour

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time for uptime reporting
_STARTUP_TIME = time.time()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
@limiter.exempt
def health_check(request: Request, db: Session = Depends(get_db)):
    """Database connectivity, tour count and uptime."""
    health = {
        "status": "healthy",
        "database": "unavailable",
        "tours": 0,
        "uptime_seconds": int(time.time() - _STARTUP_TIME),
        "timestamp": _now(),
    }

    try:
        health["tours"] = db.execute(select(func.count(Tour.id))).scalar() or 0
        health["database"] = "available"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health["status"] = "degraded"

    return health


@router.get("/ready")
@limiter.exempt
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """Returns ready=True only when the database answers."""
    try:
        db.execute(text("SELECT 1"))
        return {"ready": True, "timestamp": _now()}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return {"ready": False, "error": str(e), "timestamp": _now()}


@router.get("/live")
@limiter.exempt
async def liveness_check(request: Request):
    """Liveness probe. Returns 200 if the service is running."""
    return {"alive": True, "uptime_seconds": int(time.time() - _STARTUP_TIME), "timestamp": _now()}
