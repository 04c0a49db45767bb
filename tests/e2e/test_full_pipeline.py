"""
End-to-end tests for the full audit pipeline.

Tests the complete flow: start → crawl → checks → scores, with every
continuation claimed the way a polling client would.
Uses a local HTTP server to avoid external network dependencies.
"""
from __future__ import annotations

import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from site_audit.checks.base import CheckStatus
from site_audit.config.settings import Settings
from site_audit.pipeline.orchestrator import AuditOrchestrator
from site_audit.pipeline.service import AuditService
from site_audit.pipeline.state import AuditStatus
from site_audit.pipeline.store import InMemoryAuditStore
from site_audit.scoring.scorer import grade_for

VIEWPORT = '<meta name="viewport" content="width=device-width, initial-scale=1">'


def make_page(title: str, links: list[str]) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return (
        f"<!DOCTYPE html><html><head><title>{title}</title>{VIEWPORT}</head>"
        f"<body><h1>{title}</h1>{anchors}</body></html>"
    )


SITE = {
    "/": make_page("Home", ["/about", "/blog", "/gone"]),
    "/about": make_page("About us", ["/", "/blog"]),
    "/blog": make_page("Blog", ["/blog/first-post", "/about"]),
    "/blog/first-post": make_page("First post", ["/blog"]),
    "/robots.txt": "User-agent: *\nAllow: /\nSitemap: /sitemap.xml\n",
    "/sitemap.xml": "<urlset><url><loc>/</loc></url></urlset>",
    "/llms.txt": "# Example\n",
}


class SiteHandler(BaseHTTPRequestHandler):
    """Serves SITE from memory."""

    def _respond(self, send_body: bool) -> None:
        body = SITE.get(self.path)
        if body is None:
            self.send_response(404)
            self.send_header("Content-Type", "text/html")
            self.end_headers()
            if send_body:
                self.wfile.write(b"Not found")
            return
        content_type = "text/plain" if "." in self.path else "text/html; charset=utf-8"
        data = body.encode()
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        if send_body:
            self.wfile.write(data)

    def do_GET(self):
        self._respond(send_body=True)

    def do_HEAD(self):
        self._respond(send_body=False)

    def log_message(self, format, *args):
        """Suppress logging."""


def find_free_port():
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


class LocalHTTPServer:
    """Context manager for a local HTTP server serving SITE."""

    def __init__(self):
        self.port = find_free_port()
        self.server = None
        self.thread = None

    def __enter__(self):
        self.server = HTTPServer(("127.0.0.1", self.port), SiteHandler)
        self.thread = threading.Thread(target=self.server.serve_forever)
        self.thread.daemon = True
        self.thread.start()
        return self

    def __exit__(self, *args):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
        if self.thread:
            self.thread.join(timeout=1)

    @property
    def base_url(self):
        return f"http://127.0.0.1:{self.port}"


@pytest.fixture
def local_server():
    """Fixture that provides a local HTTP server serving the test site."""
    with LocalHTTPServer() as server:
        yield server


@pytest.fixture
def service() -> AuditService:
    custom = Settings()
    custom.fetcher.allow_private_addresses = True
    custom.crawler.politeness_delay = 0.0
    custom.batch.max_pages_per_batch = 2
    store = InMemoryAuditStore()
    return AuditService(store=store, orchestrator=AuditOrchestrator(store, settings=custom))


class TestFullPipeline:
    """Audits a real HTTP site through every phase."""

    def test_audit_completes(self, service, local_server):
        audit = service.start_audit(local_server.base_url, page_budget=20)
        batches = []

        final = service.drive(audit.id, on_batch=batches.append)

        assert final.status == AuditStatus.COMPLETED, final.error
        assert final.pages_crawled == 5
        assert final.batch_count == len(batches) > 1
        assert final.scores is not None
        assert 0 <= final.scores.overall <= 100
        assert grade_for(final.scores.overall) in ("A", "B", "C", "D", "F")

    def test_pages_and_results(self, service, local_server):
        audit = service.start_audit(local_server.base_url, page_budget=20)
        service.drive(audit.id)

        progress = service.get_status(audit.id)
        urls = [p.url for p in service.store.list_pages(audit.id)]
        assert urls[0] == local_server.base_url
        assert f"{local_server.base_url}/gone" in urls
        assert len(urls) == len(set(urls))

        by_name = {}
        for result in progress.results:
            by_name.setdefault(result.check_name, []).append(result)

        assert by_name["missing_robots_txt"][0].status == CheckStatus.PASSED
        assert by_name["missing_llms_txt"][0].status == CheckStatus.PASSED
        assert by_name["broken_internal_links"][0].status == CheckStatus.FAILED
        assert all(r.status == CheckStatus.PASSED for r in by_name["missing_title"])
        # the 404 page is never checked
        assert len(by_name["missing_title"]) == 4

    def test_page_budget(self, service, local_server):
        audit = service.start_audit(local_server.base_url, page_budget=2)
        final = service.drive(audit.id)

        assert final.status == AuditStatus.COMPLETED
        assert final.pages_crawled == 2

    def test_unreachable_site_fails(self, service):
        audit = service.start_audit(f"http://127.0.0.1:{find_free_port()}", page_budget=5)
        final = service.drive(audit.id)

        assert final.status == AuditStatus.FAILED
        assert final.error.startswith("Could not crawl the website")
