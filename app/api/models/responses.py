"""API response models."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from site_audit.pipeline.models import (
    AuditProgress,
    AuditRecord,
    CheckResultRecord,
    DismissedCheck,
)
from site_audit.scoring.scorer import grade_for

AuditStatusValue = Literal[
    "pending", "crawling", "checking", "batch_complete", "completed", "failed"
]
CheckStatusValue = Literal["passed", "warning", "failed"]
CategoryValue = Literal["seo", "technical", "ai_readiness"]
PriorityValue = Literal["critical", "recommended", "optional"]


# === Score Models ===


class AuditScoresModel(BaseModel):
    """Category and overall scores; a category without results is null."""

    overall: int | None = Field(None, ge=0, le=100, description="Mean of category scores")
    grade: Literal["A", "B", "C", "D", "F"] | None = Field(None, description="Letter grade")
    seo: int | None = Field(None, ge=0, le=100)
    technical: int | None = Field(None, ge=0, le=100)
    ai_readiness: int | None = Field(None, ge=0, le=100)
    passed_count: int = Field(0, ge=0)
    warning_count: int = Field(0, ge=0)
    failed_count: int = Field(0, ge=0)


# === Check Models ===


class CheckResultModel(BaseModel):
    """One recorded check outcome."""

    id: str
    check_name: str
    category: CategoryValue
    priority: PriorityValue
    status: CheckStatusValue
    page_url: str | None = None
    is_site_wide: bool = False
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_record(cls, record: CheckResultRecord) -> CheckResultModel:
        return cls(
            id=record.id,
            check_name=record.check_name,
            category=record.category.value,
            priority=record.priority.value,
            status=record.status.value,
            page_url=record.page_url,
            is_site_wide=record.is_site_wide,
            details=record.details,
            created_at=record.created_at,
        )


class CheckDefinitionModel(BaseModel):
    """A check in the catalogue."""

    name: str
    display_name: str
    display_name_passed: str
    description: str
    category: CategoryValue
    priority: PriorityValue
    scope: Literal["page", "site"]
    is_site_wide: bool
    learn_more_url: str | None = None


class CheckListResponse(BaseModel):
    """Check catalogue."""

    total: int
    categories: list[str]
    checks: list[CheckDefinitionModel]


# === Audit Models ===


class AuditStatusResponse(BaseModel):
    """Audit status and progress."""

    audit_id: str = Field(..., description="Unique audit identifier")
    url: str
    status: AuditStatusValue
    pages_crawled: int = Field(..., ge=0)
    page_budget: int = Field(..., ge=1)
    pages_checked: int = Field(..., ge=0, description="Pages whose per-page checks are recorded")
    batch_count: int = Field(0, ge=0)
    use_relaxed_ssl: bool = Field(
        False, description="Pages are fetched without certificate verification"
    )
    needs_continuation: bool = Field(
        ..., description="True when the client should call the continue endpoint"
    )
    scores: AuditScoresModel | None = None
    error: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    check_results: list[CheckResultModel] | None = None

    @classmethod
    def from_audit(cls, audit: AuditRecord) -> AuditStatusResponse:
        scores = None
        if audit.scores is not None:
            scores = AuditScoresModel(
                **audit.scores.to_dict(), grade=grade_for(audit.scores.overall)
            )
        return cls(
            audit_id=audit.id,
            url=audit.url,
            status=audit.status.value,
            pages_crawled=audit.pages_crawled,
            page_budget=audit.page_budget,
            pages_checked=audit.cursor,
            batch_count=audit.batch_count,
            use_relaxed_ssl=audit.use_relaxed_ssl,
            needs_continuation=audit.needs_continuation,
            scores=scores,
            error=audit.error,
            created_at=audit.created_at,
            started_at=audit.started_at,
            completed_at=audit.completed_at,
        )

    @classmethod
    def from_progress(cls, progress: AuditProgress) -> AuditStatusResponse:
        response = cls.from_audit(progress.audit)
        response.check_results = [CheckResultModel.from_record(r) for r in progress.results]
        return response


class ContinuationResponse(BaseModel):
    """Accepted continuation request."""

    accepted: bool
    status: AuditStatusValue
    batch: int | None = Field(None, description="Number of the batch that was started")


# === Dismissal Models ===


class DismissedCheckModel(BaseModel):
    """A check that is neither run nor scored for one URL."""

    id: str
    check_name: str
    url: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: DismissedCheck) -> DismissedCheckModel:
        return cls(
            id=record.id,
            check_name=record.check_name,
            url=record.url,
            created_at=record.created_at,
        )


class DismissedCheckListResponse(BaseModel):
    """Dismissed checks."""

    total: int
    dismissed_checks: list[DismissedCheckModel]


# === Health Models ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    timestamp: datetime
    checks: dict[str, bool] = Field(
        default_factory=dict, description="Individual health check results"
    )
