"""Audit lifecycle endpoints: start, status, continue, stop."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.models.errors import ErrorCodes, ErrorResponse, error_detail
from app.api.models.requests import StartAuditRequest
from app.api.models.responses import AuditStatusResponse, ContinuationResponse
from app.api.services.audit_runner import AuditRunner
from app.api.v1.deps import (
    check_start_rate_limit,
    get_audit_runner,
    get_audit_service,
    validate_audit_id,
)
from site_audit.pipeline.errors import (
    AuditNotFoundError,
    InvalidAuditRequestError,
    InvalidTransitionError,
)
from site_audit.pipeline.service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Audits"])


def _not_found(audit_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_detail(
            ErrorCodes.AUDIT_NOT_FOUND, f"Audit not found: {audit_id}", audit_id=audit_id
        ),
    )


@router.post(
    "/audits",
    response_model=AuditStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(check_start_rate_limit)],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid URL or page budget"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
    summary="Start a site audit",
    description="""
Create an audit and start its first batch in the background.

Work runs in time-boxed batches. Poll `GET /api/v1/audits/{audit_id}`; when the
status is `batch_complete`, call `POST /api/v1/audits/{audit_id}/continue`.
""",
)
async def start_audit(
    body: StartAuditRequest,
    service: AuditService = Depends(get_audit_service),
    runner: AuditRunner = Depends(get_audit_runner),
) -> AuditStatusResponse:
    """Create an audit and schedule its first batch."""
    try:
        audit = service.start_audit(str(body.url), body.page_budget)
    except InvalidAuditRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(ErrorCodes.INVALID_URL, str(e), url=str(body.url)),
        )

    runner.submit(audit.id)
    return AuditStatusResponse.from_audit(audit)


@router.get(
    "/audits/{audit_id}",
    response_model=AuditStatusResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid audit ID format"},
        404: {"model": ErrorResponse, "description": "Audit not found"},
    },
    summary="Get audit status",
    description="""
Read-only progress of an audit. Safe to poll; never rate limited.

**Status values:**
- `pending`, `crawling`, `checking`: work in progress
- `batch_complete`: a batch ended; call the continue endpoint
- `completed`: scores available
- `failed`: error message available
""",
)
async def get_audit(
    audit_id: str = Depends(validate_audit_id),
    include_results: bool = Query(True, description="Include check results recorded so far"),
    service: AuditService = Depends(get_audit_service),
) -> AuditStatusResponse:
    """Get audit status by ID."""
    try:
        progress = service.get_status(audit_id)
    except AuditNotFoundError:
        raise _not_found(audit_id)

    if include_results:
        return AuditStatusResponse.from_progress(progress)
    return AuditStatusResponse.from_audit(progress.audit)


@router.post(
    "/audits/{audit_id}/continue",
    response_model=ContinuationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": ErrorResponse, "description": "Audit not found"},
        409: {"model": ErrorResponse, "description": "Not in batch_complete or already claimed"},
    },
    summary="Continue an audit",
    description="Start the next batch of a `batch_complete` audit. Only one caller wins.",
)
async def continue_audit(
    audit_id: str = Depends(validate_audit_id),
    service: AuditService = Depends(get_audit_service),
    runner: AuditRunner = Depends(get_audit_runner),
) -> ContinuationResponse:
    """Claim and schedule the next batch."""
    try:
        result = service.continue_audit(audit_id)
    except AuditNotFoundError:
        raise _not_found(audit_id)

    if not result.accepted:
        audit = service.store.get_audit(audit_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_detail(
                ErrorCodes.CONTINUATION_REJECTED,
                result.reason or "Continuation rejected",
                audit_id=audit_id,
                status=result.status.value,
                batch_count=audit.batch_count,
                pages_crawled=audit.pages_crawled,
                page_budget=audit.page_budget,
            ),
        )

    runner.submit(audit_id)
    return ContinuationResponse(accepted=True, status=result.status.value, batch=result.batch)


@router.post(
    "/audits/{audit_id}/stop",
    response_model=AuditStatusResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Audit already finished"},
        404: {"model": ErrorResponse, "description": "Audit not found"},
    },
    summary="Stop an audit",
    description="Request cancellation. A running batch stops at its next unit of work.",
)
async def stop_audit(
    audit_id: str = Depends(validate_audit_id),
    service: AuditService = Depends(get_audit_service),
) -> AuditStatusResponse:
    """Stop an audit."""
    try:
        audit = service.stop_audit(audit_id)
    except AuditNotFoundError:
        raise _not_found(audit_id)
    except InvalidTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(
                ErrorCodes.AUDIT_FINISHED,
                "Audit has already finished.",
                audit_id=audit_id,
                status=e.current,
            ),
        )

    return AuditStatusResponse.from_audit(audit)
