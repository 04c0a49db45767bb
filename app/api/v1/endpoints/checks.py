"""Check catalogue endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Query

from app.api.models.responses import CheckDefinitionModel, CheckListResponse
from site_audit.checks.registry import check_registry

router = APIRouter(tags=["Checks"])


@router.get(
    "/checks",
    response_model=CheckListResponse,
    summary="List available checks",
    description="Catalogue of checks run by every audit, optionally filtered by category.",
)
async def list_checks(
    category: str | None = Query(None, description="seo, technical or ai_readiness"),
) -> CheckListResponse:
    """Return check definitions."""
    checks = (
        check_registry.get_by_category(category) if category else check_registry.list_all()
    )
    return CheckListResponse(
        total=len(checks),
        categories=check_registry.list_categories(),
        checks=[CheckDefinitionModel(**c.to_dict()) for c in checks],
    )
