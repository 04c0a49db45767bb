"""Health check endpoint."""
from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter

from app.api.models.responses import HealthResponse
from app.api.services.audit_runner import audit_runner
from site_audit.checks.registry import check_registry
from site_audit.config.settings import VERSION

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check API health and service status.",
)
async def health_check() -> HealthResponse:
    """Return API health status."""
    checks = {
        "check_registry": len(check_registry) > 0,
        "audit_runner": audit_runner is not None,
    }
    overall_status = "healthy" if all(checks.values()) else "degraded"

    return HealthResponse(
        status=overall_status,
        version=VERSION,
        timestamp=datetime.now(UTC),
        checks=checks,
    )
