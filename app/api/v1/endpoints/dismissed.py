"""Dismissed check endpoints: dismiss, list, restore."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.api.models.errors import ErrorCodes, ErrorResponse, error_detail
from app.api.models.requests import DismissCheckRequest
from app.api.models.responses import DismissedCheckListResponse, DismissedCheckModel
from app.api.v1.deps import AUDIT_ID_PATTERN, get_audit_service
from site_audit.pipeline.errors import (
    AuditNotFoundError,
    InvalidAuditRequestError,
    UnknownCheckError,
)
from site_audit.pipeline.service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Dismissed checks"])


@router.post(
    "/dismissed-checks",
    response_model=DismissedCheckModel,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown check or invalid URL"},
    },
    summary="Dismiss a check",
    description="""
Flag a check as not applicable to one URL. A dismissed check is not run on
that URL in later batches or audits, and results already recorded for it
do not count toward scores. Dismiss site-wide checks on the home page URL.
""",
)
async def dismiss_check(
    body: DismissCheckRequest,
    service: AuditService = Depends(get_audit_service),
) -> DismissedCheckModel:
    try:
        dismissal = service.dismiss_check(body.check_name, str(body.url))
    except UnknownCheckError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(ErrorCodes.UNKNOWN_CHECK, str(e), check_name=e.check_name),
        )
    except InvalidAuditRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(ErrorCodes.INVALID_URL, str(e), url=str(body.url)),
        )
    return DismissedCheckModel.from_record(dismissal)


@router.get(
    "/dismissed-checks",
    response_model=DismissedCheckListResponse,
    responses={404: {"model": ErrorResponse, "description": "Audit not found"}},
    summary="List dismissed checks",
)
async def list_dismissed_checks(
    audit_id: str | None = Query(
        None,
        pattern=AUDIT_ID_PATTERN.pattern,
        description="Only dismissals on the site of this audit",
    ),
    service: AuditService = Depends(get_audit_service),
) -> DismissedCheckListResponse:
    try:
        dismissals = service.list_dismissed_checks(audit_id)
    except AuditNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail(
                ErrorCodes.AUDIT_NOT_FOUND, f"Audit not found: {audit_id}", audit_id=audit_id
            ),
        )
    return DismissedCheckListResponse(
        total=len(dismissals),
        dismissed_checks=[DismissedCheckModel.from_record(d) for d in dismissals],
    )


@router.delete(
    "/dismissed-checks/{dismissal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse, "description": "Dismissal not found"}},
    summary="Restore a dismissed check",
)
async def restore_check(
    dismissal_id: str,
    service: AuditService = Depends(get_audit_service),
) -> Response:
    if not service.restore_check(dismissal_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail(
                ErrorCodes.DISMISSAL_NOT_FOUND,
                f"Dismissal not found: {dismissal_id}",
                dismissal_id=dismissal_id,
            ),
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
