"""Service-side continuation protocol: start, poll, continue, stop."""
from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import urlparse

from site_audit.config.settings import settings
from site_audit.pipeline.errors import (
    InvalidAuditRequestError,
    InvalidTransitionError,
    UnknownCheckError,
)
from site_audit.pipeline.models import (
    AuditProgress,
    AuditRecord,
    ContinuationResult,
    DismissedCheck,
    new_id,
)
from site_audit.pipeline.orchestrator import AuditOrchestrator
from site_audit.pipeline.state import AuditStatus
from site_audit.pipeline.store import AuditStore, InMemoryAuditStore

logger = logging.getLogger(__name__)


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidAuditRequestError(f"Only http and https URLs are supported: {url!r}")
    return url


class AuditService:
    """Entry point for driving audits.

    The HTTP layer and the CLI both go through this class; it owns the
    store and the orchestrator.
    """

    def __init__(
        self,
        store: AuditStore | None = None,
        orchestrator: AuditOrchestrator | None = None,
    ):
        self.store = store or InMemoryAuditStore()
        self.orchestrator = orchestrator or AuditOrchestrator(self.store)

    def start_audit(self, url: str, page_budget: int | None = None) -> AuditRecord:
        """Create a pending audit.

        Args:
            url: Seed URL (http or https)
            page_budget: Maximum pages to crawl; defaults to the configured budget
                and is capped at the configured maximum

        Raises:
            InvalidAuditRequestError: If the URL or budget is not acceptable
        """
        url = _validate_url(url)
        budget = settings.crawler.default_page_budget if page_budget is None else page_budget
        if budget < 1:
            raise InvalidAuditRequestError("page_budget must be at least 1")
        budget = min(budget, settings.crawler.max_page_budget)

        audit = self.store.create_audit(AuditRecord(id=new_id(), url=url, page_budget=budget))
        logger.info("Audit %s created for %s (budget %d)", audit.id, url, budget)
        return audit

    def get_status(self, audit_id: str) -> AuditProgress:
        """Return progress and results recorded so far; never changes state."""
        audit = self.store.get_audit(audit_id)
        return AuditProgress(audit=audit, results=self.store.list_check_results(audit_id))

    def continue_audit(self, audit_id: str) -> ContinuationResult:
        """Claim the next batch of a batch_complete audit.

        Only one of several concurrent requests is accepted.
        """
        claimed = self.store.claim_continuation(audit_id)
        if claimed is None:
            audit = self.store.get_audit(audit_id)
            reason = (
                "Continuation already claimed"
                if audit.status in (AuditStatus.CRAWLING, AuditStatus.CHECKING)
                else f"Audit is {audit.status.value}, not batch_complete"
            )
            return ContinuationResult(accepted=False, status=audit.status, reason=reason)

        logger.info("Audit %s: continuation claimed into %s", audit_id, claimed.status.value)
        return ContinuationResult(
            accepted=True, status=claimed.status, batch=claimed.batch_count + 1
        )

    def stop_audit(self, audit_id: str) -> AuditRecord:
        """Request cancellation of an audit.

        Raises:
            InvalidTransitionError: If the audit has already finished
        """
        audit = self.store.get_audit(audit_id)
        if audit.status.is_terminal:
            raise InvalidTransitionError(audit.status.value, AuditStatus.FAILED.value)
        audit = self.store.request_cancel(audit_id)
        logger.info("Audit %s: stop requested (status %s)", audit_id, audit.status.value)
        return audit

    def dismiss_check(self, check_name: str, url: str) -> DismissedCheck:
        """Stop running and scoring a check for one URL in future batches and audits.

        Raises:
            UnknownCheckError: If no check has this name
            InvalidAuditRequestError: If the URL is not http(s)
        """
        url = _validate_url(url)
        if check_name not in self.orchestrator.registry:
            raise UnknownCheckError(check_name)
        dismissal = self.store.dismiss_check(check_name, url)
        logger.info("Check %s dismissed for %s", check_name, dismissal.url)
        return dismissal

    def restore_check(self, dismissal_id: str) -> bool:
        restored = self.store.restore_check(dismissal_id)
        if restored:
            logger.info("Dismissal %s restored", dismissal_id)
        return restored

    def list_dismissed_checks(self, audit_id: str | None = None) -> list[DismissedCheck]:
        return self.store.list_dismissed_checks(audit_id)

    def run_batch(self, audit_id: str) -> AuditRecord:
        return self.orchestrator.run_batch(audit_id)

    def drive(
        self,
        audit_id: str,
        on_batch: Callable[[AuditRecord], None] | None = None,
    ) -> AuditRecord:
        """Run batches and continuations in-process until the audit finishes."""
        while True:
            audit = self.run_batch(audit_id)
            if on_batch is not None:
                on_batch(audit)
            if audit.status.is_terminal:
                return audit
            if audit.status == AuditStatus.BATCH_COMPLETE:
                result = self.continue_audit(audit_id)
                if not result.accepted and not result.status.is_terminal:
                    raise InvalidTransitionError(result.status.value, "continuation")
