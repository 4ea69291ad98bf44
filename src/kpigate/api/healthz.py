"""
Health check endpoints.

- /healthz: Liveness probe (always 200 if service alive)
- /readyz: Readiness probe (200 only if the database answers)
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/healthz",
    status_code=200,
    summary="Liveness probe",
)
async def liveness_check() -> Dict[str, Any]:
    """
    Liveness probe - always returns 200 if service is alive.
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "kpigate",
        "version": "0.1.0",
    }


@router.get(
    "/readyz",
    summary="Readiness probe",
    description="""
    Readiness probe endpoint.

    Returns 200 when the database answers a trivial query, 503 otherwise.
    Used by load balancers to determine if instance can receive traffic.
    """,
)
async def readiness_check(request: Request, response: Response) -> Dict[str, Any]:
    database = getattr(request.app.state, 'database', None)

    if database is None:
        logger.warning("Database not initialized")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "not_ready",
            "reason": "database_not_initialized",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    try:
        await database.ping()
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "Readiness check failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "not_ready",
            "reason": "database_unreachable",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return {
        "status": "ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {"database": "ok"},
    }
