"""Storage interface for audits, pages, check results and crawl state."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import replace
from typing import Any
from urllib.parse import urlsplit

from site_audit.crawler.crawler import CrawlState
from site_audit.parser.page_parser import normalize_url
from site_audit.pipeline.errors import AuditNotFoundError, StorageError
from site_audit.pipeline.models import (
    AuditRecord,
    CheckResultRecord,
    DismissedCheck,
    PageRecord,
    new_id,
    utcnow,
)
from site_audit.pipeline.state import RESUMABLE_STATUSES, AuditStatus, transition

STOPPED_MESSAGE = "Audit was stopped"


def _host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower().removeprefix("www.")


class AuditStore(ABC):
    """Everything the orchestrator needs from persistence.

    Implementations must make ``record_crawled_page`` and
    ``claim_continuation`` atomic; the continuation protocol relies on them.
    """

    @abstractmethod
    def create_audit(self, audit: AuditRecord) -> AuditRecord:
        """Persist a new audit."""

    @abstractmethod
    def get_audit(self, audit_id: str) -> AuditRecord:
        """Return an audit.

        Raises:
            AuditNotFoundError: If no audit has this ID
        """

    @abstractmethod
    def update_audit(self, audit_id: str, **fields: Any) -> AuditRecord:
        """Update fields of an audit; a ``status`` change is validated.

        Raises:
            InvalidTransitionError: If the status change is not allowed
        """

    @abstractmethod
    def record_crawled_page(
        self, audit_id: str, page: PageRecord, crawl_state: CrawlState
    ) -> AuditRecord:
        """Store a page and the crawl state that includes it, atomically."""

    @abstractmethod
    def save_crawl_state(self, audit_id: str, crawl_state: CrawlState) -> None:
        """Store the crawl state without adding a page."""

    @abstractmethod
    def load_crawl_state(self, audit_id: str) -> CrawlState | None:
        """Return the last stored crawl state, if any."""

    @abstractmethod
    def list_pages(self, audit_id: str) -> list[PageRecord]:
        """Return pages in discovery order."""

    @abstractmethod
    def insert_check_results(self, audit_id: str, results: Iterable[CheckResultRecord]) -> int:
        """Store results, ignoring any (check, page) pair already recorded.

        Returns:
            Number of results actually inserted
        """

    @abstractmethod
    def list_check_results(self, audit_id: str) -> list[CheckResultRecord]:
        """Return results in creation order."""

    @abstractmethod
    def claim_continuation(self, audit_id: str) -> AuditRecord | None:
        """Move a batch_complete audit back into its resume phase.

        Returns:
            The updated audit, or None if it was not in batch_complete
        """

    @abstractmethod
    def request_cancel(self, audit_id: str) -> AuditRecord:
        """Flag an audit for cancellation.

        An audit with no batch in progress (pending or batch_complete) is
        failed immediately; a running batch notices the flag between units
        of work.
        """

    @abstractmethod
    def dismiss_check(self, check_name: str, url: str) -> DismissedCheck:
        """Dismiss a check for a URL; dismissing twice returns the first record."""

    @abstractmethod
    def restore_check(self, dismissal_id: str) -> bool:
        """Remove a dismissal.

        Returns:
            False if no dismissal has this ID
        """

    @abstractmethod
    def list_dismissed_checks(self, audit_id: str | None = None) -> list[DismissedCheck]:
        """Return dismissals, limited to the audited site when ``audit_id`` is given.

        Raises:
            AuditNotFoundError: If ``audit_id`` is given and unknown
        """


class InMemoryAuditStore(AuditStore):
    """Process-local store guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._audits: dict[str, AuditRecord] = {}
        self._pages: dict[str, list[PageRecord]] = {}
        self._page_urls: dict[str, set[str]] = {}
        self._results: dict[str, list[CheckResultRecord]] = {}
        self._result_keys: dict[str, set[tuple[str, str | None]]] = {}
        self._crawl_states: dict[str, dict[str, Any]] = {}
        self._dismissed: dict[tuple[str, str], DismissedCheck] = {}

    def _require(self, audit_id: str) -> AuditRecord:
        """Return the stored audit (called with lock held)."""
        audit = self._audits.get(audit_id)
        if audit is None:
            raise AuditNotFoundError(audit_id)
        return audit

    def _apply(self, audit_id: str, **fields: Any) -> AuditRecord:
        """Validate and apply an update (called with lock held)."""
        audit = self._require(audit_id)
        if "status" in fields and fields["status"] != audit.status:
            fields["status"] = transition(audit.status, fields["status"])
        unknown = set(fields) - set(AuditRecord.__dataclass_fields__)
        if unknown:
            raise StorageError(f"Unknown audit fields: {', '.join(sorted(unknown))}")
        updated = replace(audit, updated_at=utcnow(), **fields)
        self._audits[audit_id] = updated
        return replace(updated)

    def create_audit(self, audit: AuditRecord) -> AuditRecord:
        with self._lock:
            if audit.id in self._audits:
                raise StorageError(f"Audit already exists: {audit.id}")
            self._audits[audit.id] = replace(audit)
            self._pages[audit.id] = []
            self._page_urls[audit.id] = set()
            self._results[audit.id] = []
            self._result_keys[audit.id] = set()
            return replace(audit)

    def get_audit(self, audit_id: str) -> AuditRecord:
        with self._lock:
            return replace(self._require(audit_id))

    def update_audit(self, audit_id: str, **fields: Any) -> AuditRecord:
        with self._lock:
            return self._apply(audit_id, **fields)

    def record_crawled_page(
        self, audit_id: str, page: PageRecord, crawl_state: CrawlState
    ) -> AuditRecord:
        with self._lock:
            audit = self._require(audit_id)
            if page.url in self._page_urls[audit_id]:
                raise StorageError(f"Page already recorded for audit {audit_id}: {page.url}")
            if len(self._pages[audit_id]) >= audit.page_budget:
                raise StorageError(f"Page budget of {audit.page_budget} exceeded")
            self._pages[audit_id].append(page)
            self._page_urls[audit_id].add(page.url)
            self._crawl_states[audit_id] = crawl_state.to_dict()
            return self._apply(audit_id, pages_crawled=len(self._pages[audit_id]))

    def save_crawl_state(self, audit_id: str, crawl_state: CrawlState) -> None:
        with self._lock:
            self._require(audit_id)
            self._crawl_states[audit_id] = crawl_state.to_dict()

    def load_crawl_state(self, audit_id: str) -> CrawlState | None:
        with self._lock:
            self._require(audit_id)
            data = self._crawl_states.get(audit_id)
        return CrawlState.from_dict(data) if data is not None else None

    def list_pages(self, audit_id: str) -> list[PageRecord]:
        with self._lock:
            self._require(audit_id)
            return list(self._pages[audit_id])

    def insert_check_results(self, audit_id: str, results: Iterable[CheckResultRecord]) -> int:
        inserted = 0
        with self._lock:
            self._require(audit_id)
            keys = self._result_keys[audit_id]
            for result in results:
                if result.key in keys:
                    continue
                keys.add(result.key)
                self._results[audit_id].append(result)
                inserted += 1
        return inserted

    def list_check_results(self, audit_id: str) -> list[CheckResultRecord]:
        with self._lock:
            self._require(audit_id)
            return list(self._results[audit_id])

    def claim_continuation(self, audit_id: str) -> AuditRecord | None:
        with self._lock:
            audit = self._require(audit_id)
            if audit.status != AuditStatus.BATCH_COMPLETE or audit.cancel_requested:
                return None
            resume = audit.resume_status
            if resume not in RESUMABLE_STATUSES:
                resume = AuditStatus.CRAWLING
            return self._apply(audit_id, status=resume, resume_status=None)

    def request_cancel(self, audit_id: str) -> AuditRecord:
        with self._lock:
            audit = self._require(audit_id)
            if audit.status.is_terminal:
                return replace(audit)
            if audit.status in (AuditStatus.PENDING, AuditStatus.BATCH_COMPLETE):
                return self._apply(
                    audit_id,
                    status=AuditStatus.FAILED,
                    error=STOPPED_MESSAGE,
                    cancel_requested=True,
                    completed_at=utcnow(),
                )
            return self._apply(audit_id, cancel_requested=True)

    def dismiss_check(self, check_name: str, url: str) -> DismissedCheck:
        key = (check_name, normalize_url(url))
        with self._lock:
            dismissal = self._dismissed.get(key)
            if dismissal is None:
                dismissal = DismissedCheck(id=new_id(), check_name=key[0], url=key[1])
                self._dismissed[key] = dismissal
            return replace(dismissal)

    def restore_check(self, dismissal_id: str) -> bool:
        with self._lock:
            for key, dismissal in self._dismissed.items():
                if dismissal.id == dismissal_id:
                    del self._dismissed[key]
                    return True
            return False

    def list_dismissed_checks(self, audit_id: str | None = None) -> list[DismissedCheck]:
        with self._lock:
            dismissals = [replace(d) for d in self._dismissed.values()]
            if audit_id is None:
                return dismissals
            host = _host(self._require(audit_id).url)
        return [d for d in dismissals if _host(d.url) == host]
