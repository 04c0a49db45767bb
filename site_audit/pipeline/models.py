"""Records persisted by the audit store."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from site_audit.checks.base import CheckCategory, CheckPriority, CheckStatus
from site_audit.crawler.crawler import CrawledPage
from site_audit.parser.page_parser import is_html_response
from site_audit.pipeline.state import AuditStatus
from site_audit.scoring.scorer import AuditScores


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid4().hex


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class AuditRecord:
    """A site audit and its progress through the state machine.

    Attributes:
        cursor: Number of pages, in discovery order, whose per-page checks
            are fully recorded
        resume_status: Phase a batch_complete audit resumes into
        batch_count: Number of batches started for this audit
        use_relaxed_ssl: Set once a page needed the certificate fallback;
            later fetches skip verification from the start
    """
    id: str
    url: str
    page_budget: int
    status: AuditStatus = AuditStatus.PENDING
    pages_crawled: int = 0
    cursor: int = 0
    resume_status: AuditStatus | None = None
    scores: AuditScores | None = None
    error: str | None = None
    batch_count: int = 0
    use_relaxed_ssl: bool = False
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def needs_continuation(self) -> bool:
        return self.status == AuditStatus.BATCH_COMPLETE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "page_budget": self.page_budget,
            "pages_crawled": self.pages_crawled,
            "cursor": self.cursor,
            "resume_status": self.resume_status.value if self.resume_status else None,
            "scores": self.scores.to_dict() if self.scores else None,
            "error": self.error,
            "batch_count": self.batch_count,
            "use_relaxed_ssl": self.use_relaxed_ssl,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }


@dataclass
class PageRecord:
    """A crawled page; ``status_code`` is 0 when no response was received."""
    id: str
    audit_id: str
    url: str
    status_code: int
    depth: int = 0
    html: str = ""
    title: str | None = None
    meta_description: str | None = None
    last_modified: str | None = None
    content_type: str = ""
    elapsed_ms: int = 0
    redirects: list[str] = field(default_factory=list)
    error: str | None = None
    is_resource: bool = False
    resource_type: str | None = None
    crawled_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_crawled(cls, audit_id: str, page: CrawledPage) -> PageRecord:
        return cls(
            id=new_id(),
            audit_id=audit_id,
            url=page.url,
            status_code=page.status_code,
            depth=page.depth,
            html=page.html,
            title=page.title,
            meta_description=page.meta_description,
            last_modified=page.last_modified,
            content_type=page.content_type,
            elapsed_ms=page.elapsed_ms,
            redirects=list(page.redirects),
            error=page.error,
            is_resource=page.is_resource,
            resource_type=page.resource_type,
        )

    @property
    def is_checkable(self) -> bool:
        """Per-page checks only run on successfully fetched HTML pages."""
        return (
            200 <= self.status_code < 300
            and not self.is_resource
            and bool(self.html)
            and is_html_response(self.content_type, self.html)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status_code": self.status_code,
            "depth": self.depth,
            "title": self.title,
            "meta_description": self.meta_description,
            "last_modified": self.last_modified,
            "elapsed_ms": self.elapsed_ms,
            "error": self.error,
            "is_resource": self.is_resource,
            "resource_type": self.resource_type,
            "crawled_at": _iso(self.crawled_at),
        }


@dataclass
class CheckResultRecord:
    """One check outcome; ``page_id`` is None for site-wide checks."""
    id: str
    audit_id: str
    check_name: str
    category: CheckCategory
    priority: CheckPriority
    status: CheckStatus
    page_id: str | None = None
    page_url: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    is_site_wide: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.check_name, self.page_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "check_name": self.check_name,
            "category": self.category.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "page_id": self.page_id,
            "page_url": self.page_url,
            "details": self.details,
            "is_site_wide": self.is_site_wide,
            "created_at": _iso(self.created_at),
        }


@dataclass
class DismissedCheck:
    """A check the user flagged as not applicable to one URL.

    Dismissals outlive audits: a dismissed check is neither run nor scored
    for that URL in any audit. Site-wide checks are dismissed for the URL
    of the home page.
    """
    id: str
    check_name: str
    url: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "check_name": self.check_name,
            "url": self.url,
            "created_at": _iso(self.created_at),
        }


@dataclass
class AuditProgress:
    """Read-only view of an audit returned to pollers."""
    audit: AuditRecord
    results: list[CheckResultRecord] = field(default_factory=list)

    @property
    def needs_continuation(self) -> bool:
        return self.audit.needs_continuation

    def to_dict(self) -> dict[str, Any]:
        data = self.audit.to_dict()
        data["needs_continuation"] = self.needs_continuation
        data["check_results"] = [r.to_dict() for r in self.results]
        return data


@dataclass
class ContinuationResult:
    """Outcome of a continuation request."""
    accepted: bool
    status: AuditStatus
    batch: int | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "status": self.status.value,
            "batch": self.batch,
            "reason": self.reason,
        }
