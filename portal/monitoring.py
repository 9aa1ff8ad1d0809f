"""
Health check and monitoring endpoints for the Aegis Insight portal.
"""
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from insight.models import ReportStatus

router = APIRouter(tags=["monitoring"])

APP_VERSION = "1.0.0"

REPORT_STATUSES = [item.value for item in ReportStatus]

# Application start time
START_TIME = time.time()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    uptime_seconds: float
    version: str
    component: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: Dict[str, Dict[str, Any]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.
    Returns 200 OK if the service is running.
    """
    uptime = time.time() - START_TIME

    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        uptime_seconds=round(uptime, 2),
        version=APP_VERSION,
        component="portal",
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request, response: Response) -> ReadinessResponse:
    """
    Readiness check endpoint.
    Verifies the database file and the outbound API keys.
    """
    settings = request.app.state.services.settings
    checks = {}
    all_ready = True

    db_path = settings.db_path
    if Path(db_path).exists():
        checks["database"] = {"status": "ok", "path": db_path, "exists": True}
    else:
        checks["database"] = {"status": "error", "path": db_path, "exists": False}
        all_ready = False

    if settings.completion.api_key:
        checks["completion"] = {"status": "ok", "model": settings.completion.model}
    else:
        checks["completion"] = {"status": "error", "message": "Completion API key not configured"}
        all_ready = False

    # search degrades to empty evidence without a key
    if settings.search.api_key:
        checks["search"] = {"status": "ok"}
    else:
        checks["search"] = {"status": "warning", "message": "Search API key not configured"}

    if not all_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        ready=all_ready,
        checks=checks,
    )


@router.get("/metrics")
def metrics(request: Request) -> Dict[str, Any]:
    """
    Application metrics in JSON format, including report counts by status.
    """
    uptime = time.time() - START_TIME
    by_status = request.app.state.services.store.count_reports_by_status()

    return {
        "app_uptime_seconds": round(uptime, 2),
        "reports_by_status": {status_name: by_status.get(status_name, 0) for status_name in REPORT_STATUSES},
        "reports_total": sum(by_status.values()),
        "app_version": APP_VERSION,
        "app_name": "aegis-insight-portal",
        "component": "portal",
        "timestamp": _now(),
    }
