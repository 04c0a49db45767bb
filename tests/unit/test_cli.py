"""Tests for the command line interface."""
from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from site_audit.checks.executor import CheckExecutor
from site_audit.cli.run import app
from site_audit.client.poller import PollTimeoutError
from site_audit.config.settings import VERSION, Settings
from site_audit.pipeline.orchestrator import AuditOrchestrator
from site_audit.pipeline.service import AuditService
from site_audit.pipeline.store import InMemoryAuditStore

runner = CliRunner()


@pytest.fixture
def offline_service(fake_site, simple_registry):
    """Route the run command to the in-memory site."""
    custom = Settings()
    custom.crawler.politeness_delay = 0.0

    def factory():
        store = InMemoryAuditStore()
        orchestrator = AuditOrchestrator(
            store,
            fetch=fake_site.fetch,
            registry=simple_registry,
            executor=CheckExecutor(1),
            settings=custom,
        )
        return AuditService(store=store, orchestrator=orchestrator)

    with patch("site_audit.cli.run.AuditService", side_effect=factory):
        yield


class TestRunCommand:
    """Tests for `site-audit run`."""

    def test_cli_report(self, offline_service):
        result = runner.invoke(app, ["run", "https://example.com"])

        assert result.exit_code == 0, result.output
        assert "7 pages crawled" in result.output
        assert "Scores" in result.output
        assert "has_viewport" in result.output

    def test_json_report_saved(self, offline_service, tmp_path):
        target = tmp_path / "report.json"

        result = runner.invoke(app, ["run", "https://example.com", "-p", "3", "-s", str(target)])

        assert result.exit_code == 0, result.output
        report = json.loads(target.read_text(encoding="utf-8"))
        assert report["status"] == "completed"
        assert report["pages_crawled"] == 3

    def test_invalid_output_format(self):
        result = runner.invoke(app, ["run", "https://example.com", "-o", "xml"])

        assert result.exit_code == 1
        assert "Invalid output format" in result.output

    def test_invalid_url(self, offline_service):
        result = runner.invoke(app, ["run", "ftp://example.com"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_failed_audit_exits_nonzero(self, offline_service, fake_site):
        fake_site.fail("https://example.com", "Request failed: ConnectionError: refused")

        result = runner.invoke(app, ["run", "https://example.com"])

        assert result.exit_code == 1
        assert "Audit failed" in result.output


class TestWatchCommand:
    """Tests for `site-audit watch`."""

    def test_completed(self):
        poller = MagicMock()
        poller.poll.return_value = {
            "status": "completed",
            "scores": {"overall": 95, "seo": 95, "technical": None, "ai_readiness": None},
            "check_results": [],
        }
        with patch("site_audit.cli.run.AuditPoller", return_value=poller) as cls:
            result = runner.invoke(app, ["watch", "abc", "--api", "http://audit.test/api/v1"])

        assert result.exit_code == 0, result.output
        cls.assert_called_once_with("http://audit.test/api/v1", timeout=None)
        assert "95" in result.output

    def test_failed(self):
        poller = MagicMock()
        poller.poll.return_value = {"status": "failed", "error": "Audit was stopped"}
        with patch("site_audit.cli.run.AuditPoller", return_value=poller):
            result = runner.invoke(app, ["watch", "abc"])

        assert result.exit_code == 1
        assert "Audit was stopped" in result.output

    def test_timeout(self):
        poller = MagicMock()
        poller.poll.side_effect = PollTimeoutError("Audit abc did not finish within 10s")
        with patch("site_audit.cli.run.AuditPoller", return_value=poller):
            result = runner.invoke(app, ["watch", "abc", "--timeout", "10"])

        assert result.exit_code == 1
        assert "Timeout" in result.output


class TestServeCommand:
    """Tests for `site-audit serve`."""

    def test_runs_uvicorn(self):
        with patch("site_audit.cli.run.uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--port", "9000"])

        assert result.exit_code == 0, result.output
        run.assert_called_once()
        assert run.call_args.args == ("app.main:app",)
        assert run.call_args.kwargs["port"] == 9000


class TestInfoCommands:
    """Tests for `checks` and `version`."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert VERSION in result.output

    def test_checks(self):
        result = runner.invoke(app, ["checks"])

        assert result.exit_code == 0
        assert "missing_title" in result.output
        assert "missing_llms_txt" in result.output

    def test_checks_by_category(self):
        result = runner.invoke(app, ["checks", "--category", "technical"])

        assert result.exit_code == 0
        assert "mixed_content" in result.output
        assert "missing_title" not in result.output
