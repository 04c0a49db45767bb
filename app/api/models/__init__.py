"""API Pydantic models."""
from app.api.models.errors import ErrorCodes, ErrorDetail, ErrorResponse
from app.api.models.requests import StartAuditRequest
from app.api.models.responses import (
    AuditScoresModel,
    AuditStatusResponse,
    CheckListResponse,
    CheckResultModel,
    ContinuationResponse,
    HealthResponse,
)

__all__ = [
    "StartAuditRequest",
    "AuditStatusResponse",
    "AuditScoresModel",
    "CheckResultModel",
    "CheckListResponse",
    "ContinuationResponse",
    "HealthResponse",
    "ErrorResponse",
    "ErrorDetail",
    "ErrorCodes",
]
