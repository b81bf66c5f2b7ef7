from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from alldownloads.core.config import get_settings
from alldownloads.db.init_db import check_database
from alldownloads.jobs.queue import QueueError, get_job_queue

router = APIRouter(tags=["health"])


@router.get("/health")
def get_health() -> JSONResponse:
    settings = get_settings()
    checks: dict[str, str] = {}

    try:
        check_database()
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc.__class__.__name__}"

    try:
        get_job_queue().ping()
        checks["redis"] = "ok"
    except QueueError as exc:
        checks["redis"] = f"error: {exc}"

    healthy = all(value == "ok" for value in checks.values())
    body = {
        "status": "ok" if healthy else "degraded",
        "service": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "checks": checks,
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )
