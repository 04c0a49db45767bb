"""Breadth-first, budget-bounded site crawler."""
from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from site_audit.config.settings import settings
from site_audit.fetcher.page_fetcher import FetchResult, fetch_page
from site_audit.parser.page_parser import (
    extract_links,
    extract_page_metadata,
    get_resource_type,
    is_html_response,
    normalize_url,
)

logger = logging.getLogger(__name__)


@dataclass
class CrawlState:
    """Everything needed to resume a crawl in a later process.

    Attributes:
        frontier: Pending (url, depth) pairs in FIFO order
        seen: Normalized URLs ever enqueued (never enqueued twice)
        crawled: Normalized URLs already recorded as pages
        budget_used: Number of fetches consumed, failures included
    """
    frontier: list[tuple[str, int]] = field(default_factory=list)
    seen: set[str] = field(default_factory=set)
    crawled: set[str] = field(default_factory=set)
    budget_used: int = 0

    @classmethod
    def for_seed(cls, seed_url: str) -> CrawlState:
        seed = normalize_url(seed_url)
        return cls(frontier=[(seed, 0)], seen={seed})

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "frontier": [[url, depth] for url, depth in self.frontier],
            "seen": sorted(self.seen),
            "crawled": sorted(self.crawled),
            "budget_used": self.budget_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CrawlState:
        return cls(
            frontier=[(url, int(depth)) for url, depth in data.get("frontier", [])],
            seen=set(data.get("seen", [])),
            crawled=set(data.get("crawled", [])),
            budget_used=int(data.get("budget_used", 0)),
        )


@dataclass
class CrawledPage:
    """A page discovered and fetched by the crawler."""
    url: str
    requested_url: str
    depth: int
    status_code: int
    html: str = ""
    elapsed_ms: int = 0
    last_modified: str | None = None
    content_type: str = ""
    redirects: list[str] = field(default_factory=list)
    error: str | None = None
    ssl_relaxed: bool = False
    is_resource: bool = False
    resource_type: str | None = None
    title: str | None = None
    meta_description: str | None = None
    links: list[str] = field(default_factory=list)


def _same_host(url: str, other: str) -> bool:
    host = (urlsplit(url).hostname or "").lower().removeprefix("www.")
    other_host = (urlsplit(other).hostname or "").lower().removeprefix("www.")
    return bool(host) and host == other_host


class Crawler:
    """Breadth-first crawler with a bounded fetch pool.

    Fetches run concurrently, but results are consumed in submission order by
    the calling thread, which alone mutates the frontier and the seen set. The
    discovery order is therefore the same as a sequential breadth-first crawl.

    Usage:
        crawler = Crawler()
        for page in crawler.crawl("https://example.com", page_budget=50):
            save(page, crawler.snapshot())
    """

    def __init__(
        self,
        fetch: Callable[[str], FetchResult] = fetch_page,
        workers: int | None = None,
        politeness_delay: float | None = None,
    ):
        self._fetch = fetch
        self._workers = max(1, workers or settings.crawler.fetch_workers)
        self._delay = (
            settings.crawler.politeness_delay if politeness_delay is None else politeness_delay
        )
        self._state = CrawlState()
        self._frontier: deque[tuple[str, int]] = deque()
        self._in_flight: deque[tuple[str, int, Future]] = deque()
        self._executor: ThreadPoolExecutor | None = None

    def crawl(
        self,
        seed_url: str,
        page_budget: int,
        state: CrawlState | None = None,
    ) -> Iterator[CrawledPage]:
        """Yield pages in discovery order until the frontier or the budget runs out.

        Args:
            seed_url: Starting URL; defines the site being crawled
            page_budget: Maximum number of fetches, failures included
            state: State from a previous snapshot() to resume from
        """
        if state is None:
            state = CrawlState.for_seed(seed_url)
        self._state = CrawlState(
            frontier=[],
            seen=set(state.seen),
            crawled=set(state.crawled),
            budget_used=state.budget_used,
        )
        self._frontier = deque(state.frontier)
        self._in_flight = deque()
        self._executor = ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="crawl"
        )

        try:
            while True:
                self._fill(page_budget)
                if not self._in_flight:
                    break

                url, depth, future = self._in_flight[0]
                result = future.result()
                self._in_flight.popleft()
                self._state.budget_used += 1

                page = self._process(seed_url, url, depth, result)
                if page is not None:
                    yield page
        finally:
            self.close()

        logger.debug(
            "Crawl of %s finished: %d fetches, %d pages",
            seed_url, self._state.budget_used, len(self._state.crawled),
        )

    def _fill(self, page_budget: int) -> None:
        """Submit frontier URLs while workers and budget allow."""
        while (
            self._frontier
            and len(self._in_flight) < self._workers
            and self._state.budget_used + len(self._in_flight) < page_budget
        ):
            url, depth = self._frontier.popleft()
            if self._delay and self._in_flight:
                time.sleep(self._delay)
            future = self._executor.submit(self._fetch, url)
            self._in_flight.append((url, depth, future))

    def _process(
        self, seed_url: str, url: str, depth: int, result: FetchResult
    ) -> CrawledPage | None:
        state = self._state
        page_url = url
        if (
            not result.network_error
            and result.final_url
            and _same_host(result.final_url, seed_url)
        ):
            page_url = normalize_url(result.final_url)

        if page_url in state.crawled:
            logger.debug("Skipping %s: redirected to already crawled %s", url, page_url)
            return None
        state.crawled.add(page_url)
        state.seen.add(page_url)

        resource_type = get_resource_type(page_url) or get_resource_type(url)
        page = CrawledPage(
            url=page_url,
            requested_url=url,
            depth=depth,
            status_code=result.status_code,
            elapsed_ms=result.elapsed_ms,
            last_modified=result.last_modified,
            content_type=result.content_type,
            redirects=list(result.redirects),
            error=result.error,
            ssl_relaxed=result.ssl_relaxed,
            is_resource=resource_type is not None,
            resource_type=resource_type,
        )

        if resource_type or not result.ok or not is_html_response(result.content_type, result.html):
            return page

        page.html = result.html
        metadata = extract_page_metadata(result.html)
        page.title = metadata["title"]
        page.meta_description = metadata["meta_description"]

        # Redirected off-site: record the page but do not follow its links
        if not _same_host(result.final_url, seed_url):
            return page

        page.links = extract_links(result.html, seed_url, result.final_url)
        for link in page.links:
            if link not in state.seen:
                state.seen.add(link)
                self._frontier.append((link, depth + 1))

        return page

    def snapshot(self) -> CrawlState:
        """Return resumable state; in-flight URLs are treated as still pending."""
        pending = [(url, depth) for url, depth, _ in self._in_flight]
        pending.extend(self._frontier)
        return CrawlState(
            frontier=pending,
            seen=set(self._state.seen),
            crawled=set(self._state.crawled),
            budget_used=self._state.budget_used,
        )

    def close(self) -> None:
        """Cancel in-flight work without waiting for it."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
