"""Time-boxed, resumable audit batches."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import closing
from urllib.parse import urlsplit

from site_audit.checks.base import BaseCheck, CheckContext, CheckOutcome
from site_audit.checks.executor import CheckExecutor
from site_audit.checks.registry import CheckRegistry, check_registry
from site_audit.config.settings import Settings
from site_audit.config.settings import settings as default_settings
from site_audit.crawler.crawler import Crawler, CrawlState
from site_audit.fetcher.page_fetcher import FetchResult, fetch_page
from site_audit.pipeline.errors import (
    AuditCancelledError,
    InvalidTransitionError,
    SeedUnreachableError,
)
from site_audit.pipeline.models import (
    AuditRecord,
    CheckResultRecord,
    PageRecord,
    new_id,
    utcnow,
)
from site_audit.pipeline.state import AuditStatus
from site_audit.pipeline.store import STOPPED_MESSAGE, AuditStore
from site_audit.scoring.scorer import score

logger = logging.getLogger(__name__)


def _page_context(page: PageRecord, all_pages: list[PageRecord]) -> CheckContext:
    return CheckContext(
        url=page.url,
        html=page.html,
        title=page.title,
        status_code=page.status_code,
        all_pages=all_pages,
        meta_description=page.meta_description,
        last_modified=page.last_modified,
    )


def find_home_page(pages: list[PageRecord]) -> PageRecord | None:
    """Page at the site root if it was crawled, otherwise the first page."""
    if not pages:
        return None
    for page in pages:
        if urlsplit(page.url).path in ("", "/"):
            return page
    return pages[0]


class AuditOrchestrator:
    """Advances an audit through crawling and checking, one batch at a time.

    A batch ends when the work is done, the wall-clock budget is spent, or
    the per-batch crawl cap is reached; in the last two cases the audit is
    left in ``batch_complete`` and everything needed to resume is in the
    store. Site-wide checks only start with ``site_wide_reserve_seconds``
    of the budget left.

    ``fetch`` is called with the URL alone until a page needs the
    certificate fallback; after that, and in every later batch, it is
    called with ``relaxed_ssl=True``.

    Usage:
        orchestrator = AuditOrchestrator(store)
        audit = orchestrator.run_batch(audit_id)
    """

    def __init__(
        self,
        store: AuditStore,
        fetch: Callable[..., FetchResult] = fetch_page,
        registry: CheckRegistry | None = None,
        executor: CheckExecutor | None = None,
        clock: Callable[[], float] = time.monotonic,
        settings: Settings | None = None,
    ):
        self._store = store
        self._fetch = fetch
        self._registry = registry or check_registry
        self._settings = settings or default_settings
        self._executor = executor or CheckExecutor(self._settings.batch.check_workers)
        self._clock = clock

    @property
    def registry(self) -> CheckRegistry:
        return self._registry

    def run_batch(self, audit_id: str) -> AuditRecord:
        """Run one batch of work for an audit.

        Completed, failed and unclaimed batch_complete audits are returned
        unchanged.

        Raises:
            AuditNotFoundError: If the audit does not exist
        """
        audit = self._store.get_audit(audit_id)
        if audit.status.is_terminal or audit.status == AuditStatus.BATCH_COMPLETE:
            return audit

        deadline = self._clock() + self._settings.batch.max_batch_seconds
        try:
            if audit.status == AuditStatus.PENDING:
                audit = self._store.update_audit(
                    audit_id,
                    status=AuditStatus.CRAWLING,
                    started_at=utcnow(),
                    batch_count=audit.batch_count + 1,
                )
                self._store.save_crawl_state(audit_id, CrawlState.for_seed(audit.url))
            else:
                audit = self._store.update_audit(audit_id, batch_count=audit.batch_count + 1)

            logger.info(
                "Audit %s: batch %d started in %s", audit_id, audit.batch_count, audit.status.value
            )
            self._ensure_not_cancelled(audit_id)

            if audit.status == AuditStatus.CRAWLING:
                audit = self._crawl(audit, deadline)
            if audit.status == AuditStatus.CHECKING:
                audit = self._check(audit, deadline)
        except AuditCancelledError:
            logger.info("Audit %s stopped by request", audit_id)
            return self._fail(audit_id, STOPPED_MESSAGE)
        except SeedUnreachableError as e:
            logger.warning("Audit %s: %s", audit_id, e)
            return self._fail(audit_id, str(e))
        except InvalidTransitionError as e:
            # Another writer (a stop request) moved the audit first
            logger.warning("Audit %s: %s", audit_id, e)
            return self._store.get_audit(audit_id)
        except Exception as e:
            logger.exception("Audit %s failed", audit_id)
            return self._fail(audit_id, str(e) or type(e).__name__)

        logger.info(
            "Audit %s: batch %d ended in %s (%d pages, cursor %d)",
            audit_id, audit.batch_count, audit.status.value, audit.pages_crawled, audit.cursor,
        )
        return audit

    def _ensure_not_cancelled(self, audit_id: str) -> None:
        if self._store.get_audit(audit_id).cancel_requested:
            raise AuditCancelledError(audit_id)

    def _fail(self, audit_id: str, message: str) -> AuditRecord:
        audit = self._store.get_audit(audit_id)
        if audit.status.is_terminal:
            return audit
        return self._store.update_audit(
            audit_id,
            status=AuditStatus.FAILED,
            error=message,
            completed_at=utcnow(),
        )

    def _pause(self, audit: AuditRecord, resume: AuditStatus) -> AuditRecord:
        return self._store.update_audit(
            audit.id, status=AuditStatus.BATCH_COMPLETE, resume_status=resume
        )

    def _crawl(self, audit: AuditRecord, deadline: float) -> AuditRecord:
        state = self._store.load_crawl_state(audit.id) or CrawlState.for_seed(audit.url)
        relaxed_ssl = audit.use_relaxed_ssl

        def fetch(url: str) -> FetchResult:
            if relaxed_ssl:
                return self._fetch(url, relaxed_ssl=True)
            return self._fetch(url)

        crawler = Crawler(
            fetch=fetch,
            workers=self._settings.crawler.fetch_workers,
            politeness_delay=self._settings.crawler.politeness_delay,
        )
        max_pages = self._settings.batch.max_pages_per_batch
        pages_this_batch = 0
        out_of_time = False

        with closing(crawler.crawl(audit.url, audit.page_budget, state)) as pages:
            for crawled in pages:
                is_seed = audit.pages_crawled == 0
                page = PageRecord.from_crawled(audit.id, crawled)
                audit = self._store.record_crawled_page(audit.id, page, crawler.snapshot())
                if is_seed and crawled.status_code == 0:
                    raise SeedUnreachableError(f"Could not crawl the website: {crawled.error}")
                if crawled.ssl_relaxed and not relaxed_ssl:
                    logger.warning(
                        "Audit %s: certificate error on %s, continuing without verification",
                        audit.id, crawled.url,
                    )
                    relaxed_ssl = True
                    audit = self._store.update_audit(audit.id, use_relaxed_ssl=True)

                pages_this_batch += 1
                self._ensure_not_cancelled(audit.id)
                if self._clock() >= deadline or pages_this_batch >= max_pages:
                    out_of_time = True
                    break

        snapshot = crawler.snapshot()
        self._store.save_crawl_state(audit.id, snapshot)

        finished = not snapshot.frontier or snapshot.budget_used >= audit.page_budget
        if not finished:
            logger.info(
                "Audit %s: crawl paused after %d pages this batch (out of time: %s)",
                audit.id, pages_this_batch, out_of_time,
            )
            return self._pause(audit, AuditStatus.CRAWLING)

        logger.info("Audit %s: crawl finished with %d pages", audit.id, audit.pages_crawled)
        return self._store.update_audit(audit.id, status=AuditStatus.CHECKING)

    def _records(
        self,
        audit_id: str,
        page: PageRecord | None,
        runs: list[tuple[BaseCheck, CheckOutcome]],
    ) -> list[CheckResultRecord]:
        return [
            CheckResultRecord(
                id=new_id(),
                audit_id=audit_id,
                check_name=check.name,
                category=check.category,
                priority=check.priority,
                status=outcome.status,
                page_id=None if check.is_site_wide else page.id,
                page_url=page.url if page else None,
                details=outcome.details,
                is_site_wide=check.is_site_wide,
            )
            for check, outcome in runs
        ]

    def _dismissed(self, audit_id: str) -> set[tuple[str, str]]:
        return {(d.check_name, d.url) for d in self._store.list_dismissed_checks(audit_id)}

    @staticmethod
    def _skipped(
        page: PageRecord,
        recorded: set[tuple[str, str | None]],
        dismissed: set[tuple[str, str]],
    ) -> set[str]:
        """Checks not to run on a page: already recorded or dismissed for its URL."""
        skip = {name for name, page_id in recorded if page_id == page.id}
        skip.update(name for name, url in dismissed if url == page.url)
        return skip

    def _check(self, audit: AuditRecord, deadline: float) -> AuditRecord:
        pages = self._store.list_pages(audit.id)
        recorded = {r.key for r in self._store.list_check_results(audit.id)}
        dismissed = self._dismissed(audit.id)
        page_checks = self._registry.page_checks()
        chunk_size = max(1, self._settings.batch.check_workers)
        cursor = audit.cursor

        while cursor < len(pages):
            self._ensure_not_cancelled(audit.id)
            if self._clock() >= deadline:
                logger.info("Audit %s: checks paused at page %d of %d", audit.id, cursor, len(pages))
                return self._pause(audit, AuditStatus.CHECKING)

            chunk = pages[cursor:cursor + chunk_size]
            checkable = [p for p in chunk if p.is_checkable]
            runs = self._executor.run_pages(
                [_page_context(p, pages) for p in checkable],
                page_checks,
                [self._skipped(p, recorded, dismissed) for p in checkable],
            )
            records = []
            for page, page_runs in zip(checkable, runs):
                records.extend(self._records(audit.id, page, page_runs))
            self._store.insert_check_results(audit.id, records)
            recorded.update(r.key for r in records)

            cursor += len(chunk)
            audit = self._store.update_audit(audit.id, cursor=cursor)

        self._ensure_not_cancelled(audit.id)
        batch = self._settings.batch
        reserve = min(batch.site_wide_reserve_seconds, batch.max_batch_seconds / 2)
        if self._clock() >= deadline - reserve:
            logger.info("Audit %s: site-wide checks deferred to the next batch", audit.id)
            return self._pause(audit, AuditStatus.CHECKING)

        home = find_home_page(pages)
        if home is not None:
            done = {name for name, page_id in recorded if page_id is None}
            done.update(name for name, url in dismissed if url == home.url)
            runs = self._executor.run_site_wide_checks(
                _page_context(home, pages), self._registry.site_wide_checks(), skip=done
            )
            self._store.insert_check_results(audit.id, self._records(audit.id, home, runs))

        self._ensure_not_cancelled(audit.id)
        dismissed = self._dismissed(audit.id)
        scores = score(
            r for r in self._store.list_check_results(audit.id)
            if (r.check_name, r.page_url) not in dismissed
        )
        logger.info("Audit %s completed with overall score %s", audit.id, scores.overall)
        return self._store.update_audit(
            audit.id,
            status=AuditStatus.COMPLETED,
            scores=scores,
            completed_at=utcnow(),
        )
