"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ returns 200 while the process is up (liveness)
    - GET /health/ready returns 503 unless the database answers and the
      service graph has been built by the lifespan (readiness)
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from badgeledger.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE_NAME = "badgeledger-api"


@router.get("/")
async def liveness():
    return {"status": "healthy", "service": SERVICE_NAME, "version": "1.0.0"}


@router.get("/ready")
async def readiness(request: Request):
    manager = database.db_manager
    checks = {
        "database": bool(manager) and await manager.health_check(),
        "services": getattr(request.app.state, "services", None) is not None,
    }
    body = {
        "status": "ready" if all(checks.values()) else "not_ready",
        "checks": {name: "ok" if ok else "failing" for name, ok in checks.items()},
    }
    if body["status"] != "ready":
        logger.warning(f"Readiness check failing: {body['checks']}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body,
        )
    return body
