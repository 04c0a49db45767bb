"""Error payloads returned by the audit API.

Every non-2xx response carries ``{"detail": {"error": {...}}}``; the inner
object is an ErrorDetail whose ``details`` echo the audit, check or
dismissal the request was about.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """What went wrong, for machines and for people."""

    code: str = Field(..., description="One of the ErrorCodes values")
    message: str = Field(..., description="Human-readable explanation")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Identifiers and state relevant to the error, e.g. audit_id and status",
    )


class ErrorResponse(BaseModel):
    """Error body documented on every audit endpoint."""

    error: ErrorDetail

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": {
                    "code": "CONTINUATION_REJECTED",
                    "message": "Continuation already claimed",
                    "details": {
                        "audit_id": "3f2c9a7e51d84b0c9e6a2d17f4b8c053",
                        "status": "crawling",
                        "batch_count": 3,
                        "pages_crawled": 150,
                        "page_budget": 400,
                    },
                }
            }
        }
    }


class ErrorCodes:
    """Error codes, grouped by the HTTP status they are sent with."""

    # 400
    INVALID_URL = "INVALID_URL"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN_CHECK = "UNKNOWN_CHECK"
    AUDIT_FINISHED = "AUDIT_FINISHED"
    # 404
    AUDIT_NOT_FOUND = "AUDIT_NOT_FOUND"
    DISMISSAL_NOT_FOUND = "DISMISSAL_NOT_FOUND"
    # 409: not batch_complete, or another caller claimed the batch first
    CONTINUATION_REJECTED = "CONTINUATION_REJECTED"
    # 429
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_detail(code: str, message: str, **details: Any) -> dict[str, Any]:
    """Build the ``detail`` payload for an HTTPException."""
    return {"error": {"code": code, "message": message, "details": details or None}}
