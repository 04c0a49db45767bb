"""Shared test fixtures and configuration."""
from __future__ import annotations

import threading

import pytest

from site_audit.checks.base import (
    BaseCheck,
    CheckCategory,
    CheckContext,
    CheckOutcome,
    CheckPriority,
    CheckScope,
)
from site_audit.checks.registry import CheckRegistry
from site_audit.config.settings import settings
from site_audit.fetcher.page_fetcher import FetchResult
from site_audit.parser.page_parser import normalize_url


def make_page(title: str = "Page", links: list[str] | None = None, body: str = "") -> str:
    """Build a small HTML page linking to ``links``."""
    anchors = "\n".join(f'<a href="{href}">{href}</a>' for href in links or [])
    return f"""<!DOCTYPE html>
<html>
<head><title>{title}</title></head>
<body>
<h1>{title}</h1>
{body}
{anchors}
</body>
</html>"""


class FakeSite:
    """In-memory website served through a fetch-compatible callable.

    Usage:
        site = FakeSite({"https://example.com": make_page(links=["/a"])})
        result = site.fetch("https://example.com")
    """

    def __init__(self, pages: dict[str, str] | None = None):
        self.pages: dict[str, str] = {}
        self.statuses: dict[str, int] = {}
        self.redirects: dict[str, str] = {}
        self.errors: dict[str, str] = {}
        self.calls: list[str] = []
        self.relaxed_calls: list[str] = []
        # simulates a certificate that only fetches with relaxed verification accept
        self.bad_certificate = False
        self._lock = threading.Lock()
        for url, html in (pages or {}).items():
            self.add(url, html)

    def add(self, url: str, html: str, status_code: int = 200) -> None:
        key = normalize_url(url)
        self.pages[key] = html
        self.statuses[key] = status_code

    def redirect(self, url: str, target: str) -> None:
        self.redirects[normalize_url(url)] = target

    def fail(self, url: str, error: str = "Request timed out after 8s") -> None:
        self.errors[normalize_url(url)] = error

    def fetch(self, url: str, relaxed_ssl: bool = False) -> FetchResult:
        with self._lock:
            self.calls.append(url)
            if relaxed_ssl:
                self.relaxed_calls.append(url)
        result = self._respond(url)
        result.ssl_relaxed = relaxed_ssl or self.bad_certificate
        return result

    def _respond(self, url: str) -> FetchResult:
        key = normalize_url(url)
        if key in self.errors:
            return FetchResult(url=url, final_url=url, error=self.errors[key])

        hops = []
        while key in self.redirects:
            target = self.redirects[key]
            hops.append(target)
            key = normalize_url(target)

        final_url = hops[-1] if hops else url
        if key not in self.pages:
            return FetchResult(
                url=url, final_url=final_url, html="Not found", status_code=404,
                content_type="text/html", redirects=hops, error="HTTP 404",
            )

        status_code = self.statuses[key]
        return FetchResult(
            url=url,
            final_url=final_url,
            html=self.pages[key],
            status_code=status_code,
            elapsed_ms=5,
            content_type="text/html; charset=utf-8",
            redirects=hops,
            error=None if 200 <= status_code < 300 else f"HTTP {status_code}",
        )


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TitleCheck(BaseCheck):
    name = "has_title"
    display_name = "Missing Title"
    display_name_passed = "Title"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.PAGE

    def run(self, context: CheckContext) -> CheckOutcome:
        if context.title:
            return CheckOutcome.passed("Title present")
        return CheckOutcome.failed("Title missing")


class ViewportCheck(BaseCheck):
    name = "has_viewport"
    display_name = "Missing Viewport"
    display_name_passed = "Viewport"
    category = CheckCategory.TECHNICAL
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.PAGE

    def run(self, context: CheckContext) -> CheckOutcome:
        if context.soup.find("meta", attrs={"name": "viewport"}):
            return CheckOutcome.passed("Viewport present")
        return CheckOutcome.warning("Viewport missing")


class PageCountCheck(BaseCheck):
    name = "page_count"
    display_name = "Too Few Pages"
    display_name_passed = "Page Count"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.OPTIONAL
    scope = CheckScope.SITE

    def run(self, context: CheckContext) -> CheckOutcome:
        return CheckOutcome.passed(f"{len(context.all_pages)} pages", pages=len(context.all_pages))


@pytest.fixture(autouse=True)
def allow_private_addresses(monkeypatch):
    """Skip DNS-based SSRF validation; tests never touch the network."""
    monkeypatch.setattr(settings.fetcher, "allow_private_addresses", True)
    monkeypatch.setattr(settings.crawler, "politeness_delay", 0.0)


@pytest.fixture
def page_html():
    """Factory for small HTML pages: page_html(title, links, body)."""
    return make_page


@pytest.fixture
def site_factory():
    """Factory for FakeSite instances."""
    return FakeSite


@pytest.fixture
def fake_site() -> FakeSite:
    """Five-page site with one external link and one broken link."""
    return FakeSite({
        "https://example.com": make_page(
            "Home",
            ["/about", "/blog", "/contact", "https://external.com/page", "/missing"],
        ),
        "https://example.com/about": make_page("About", ["/", "/team"]),
        "https://example.com/blog": make_page("Blog", ["/blog/first-post"]),
        "https://example.com/contact": make_page("Contact"),
        "https://example.com/team": make_page("Team"),
        "https://example.com/blog/first-post": make_page("First Post"),
    })


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def simple_registry() -> CheckRegistry:
    """Registry with network-free checks: two per-page, one site-wide."""
    registry = CheckRegistry()
    registry.register(TitleCheck())
    registry.register(ViewportCheck())
    registry.register(PageCountCheck())
    return registry


@pytest.fixture
def valid_html() -> str:
    """Return a valid HTML page for testing."""
    return """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Test Page - Site Audit Example</title>
    <meta name="description" content="This is a test page for validating site audit functionality. It contains various content elements for comprehensive testing.">
    <link rel="canonical" href="https://example.com/test-page">
    <meta name="robots" content="index, follow">
    <script type="application/ld+json">
    {"@context": "https://schema.org", "@type": "Organization", "name": "Example Inc",
     "url": "https://example.com", "logo": "https://example.com/logo.png",
     "description": "Example company"}
    </script>
</head>
<body>
    <h1>Main Heading for Test Page</h1>
    <p>This is the first paragraph with some introductory content about the test page.</p>

    <h2>Section One: Overview</h2>
    <p>Machine learning is defined as a subset of artificial intelligence that enables systems to learn from data.</p>
    <p>According to a 2024 study, 85% of enterprises now use some form of AI technology.</p>

    <h2>Section Two: Details</h2>
    <ul>
        <li>First item in the list</li>
        <li>Second item with more details</li>
        <li>Third item for completeness</li>
    </ul>

    <h3>Subsection: Technical Details</h3>
    <p>The implementation uses Python 3.11 with the FastAPI framework and a crawler built on requests.</p>

    <img src="/images/test.jpg" alt="Test image description">

    <a href="/internal-link">Internal Link</a>
    <a href="https://external.com">External Link</a>
</body>
</html>"""


@pytest.fixture
def minimal_html() -> str:
    """Return minimal HTML for edge case testing."""
    return """<!DOCTYPE html>
<html>
<head><title>Minimal</title></head>
<body><p>Content</p></body>
</html>"""
