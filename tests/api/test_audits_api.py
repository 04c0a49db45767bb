"""Tests for the /api/v1 audit endpoints."""
from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.api.services.audit_runner import audit_service
from app.main import app
from site_audit.pipeline.errors import StorageError
from site_audit.pipeline.state import AuditStatus


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def reset_rate_limiter():
    """Reset the audit creation rate limiter around each test."""
    from app.api.v1.deps import start_rate_limiter

    start_rate_limiter.reset()
    yield
    start_rate_limiter.reset()


@pytest.fixture
def mock_submit():
    """Keep batches from running in the background."""
    with patch("app.api.services.audit_runner.audit_runner.submit") as submit:
        submit.return_value = True
        yield submit


def _start(client, url="https://example.com", **body) -> dict:
    response = client.post("/api/v1/audits", json={"url": url, **body})
    assert response.status_code == 202
    return response.json()


class TestStartAudit:
    """Tests for POST /api/v1/audits."""

    def test_start_returns_pending_audit(self, client, reset_rate_limiter, mock_submit):
        data = _start(client, page_budget=25)

        assert data["status"] == "pending"
        assert data["page_budget"] == 25
        assert data["pages_crawled"] == 0
        assert data["needs_continuation"] is False
        assert data["url"].rstrip("/") == "https://example.com"
        mock_submit.assert_called_once_with(data["audit_id"])

    def test_invalid_scheme_rejected(self, client, reset_rate_limiter, mock_submit):
        response = client.post("/api/v1/audits", json={"url": "ftp://example.com"})

        assert response.status_code == 422
        mock_submit.assert_not_called()

    def test_malformed_url_rejected(self, client, reset_rate_limiter, mock_submit):
        response = client.post("/api/v1/audits", json={"url": "not-a-url"})
        assert response.status_code == 422

    @pytest.mark.parametrize("budget", [0, -1, 10**6])
    def test_out_of_range_budget_rejected(self, client, reset_rate_limiter, mock_submit, budget):
        response = client.post(
            "/api/v1/audits", json={"url": "https://example.com", "page_budget": budget}
        )
        assert response.status_code == 422

    def test_rate_limited(self, client, reset_rate_limiter, mock_submit, monkeypatch):
        from app.api.v1.deps import start_rate_limiter

        monkeypatch.setattr(start_rate_limiter, "limit", 2)
        _start(client)
        _start(client)

        response = client.post("/api/v1/audits", json={"url": "https://example.com"})

        assert response.status_code == 429
        assert response.json()["detail"]["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert "Retry-After" in response.headers

    def test_rate_limit_headers(self, client, reset_rate_limiter, mock_submit):
        response = client.post("/api/v1/audits", json={"url": "https://example.com"})

        assert "X-RateLimit-Limit" in response.headers
        assert "X-RateLimit-Remaining" in response.headers


class TestGetAudit:
    """Tests for GET /api/v1/audits/{audit_id}."""

    def test_get_status(self, client, reset_rate_limiter, mock_submit):
        audit_id = _start(client)["audit_id"]

        response = client.get(f"/api/v1/audits/{audit_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["audit_id"] == audit_id
        assert data["status"] == "pending"
        assert data["check_results"] == []

    def test_results_can_be_omitted(self, client, reset_rate_limiter, mock_submit):
        audit_id = _start(client)["audit_id"]
        data = client.get(f"/api/v1/audits/{audit_id}?include_results=false").json()
        assert data["check_results"] is None

    def test_polling_is_not_rate_limited(self, client, reset_rate_limiter, mock_submit, monkeypatch):
        from app.api.v1.deps import start_rate_limiter

        monkeypatch.setattr(start_rate_limiter, "limit", 1)
        audit_id = _start(client)["audit_id"]

        for _ in range(5):
            assert client.get(f"/api/v1/audits/{audit_id}").status_code == 200

    def test_unknown_audit(self, client):
        response = client.get(f"/api/v1/audits/{'0' * 32}")

        assert response.status_code == 404
        assert response.json()["detail"]["error"]["code"] == "AUDIT_NOT_FOUND"

    def test_storage_error_is_internal_error(self, client):
        with patch.object(audit_service, "get_status", side_effect=StorageError("store unavailable")):
            response = client.get(f"/api/v1/audits/{'0' * 32}")

        assert response.status_code == 500
        assert response.json()["detail"]["error"]["code"] == "INTERNAL_ERROR"

    def test_malformed_id(self, client):
        response = client.get("/api/v1/audits/not-an-id")

        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == "INVALID_REQUEST"


class TestContinueAudit:
    """Tests for POST /api/v1/audits/{audit_id}/continue."""

    def test_continue_batch_complete(self, client, reset_rate_limiter, mock_submit):
        audit_id = _start(client)["audit_id"]
        store = audit_service.store
        store.update_audit(audit_id, status=AuditStatus.CRAWLING)
        store.update_audit(
            audit_id, status=AuditStatus.BATCH_COMPLETE, resume_status=AuditStatus.CRAWLING
        )
        assert client.get(f"/api/v1/audits/{audit_id}").json()["needs_continuation"] is True

        first = client.post(f"/api/v1/audits/{audit_id}/continue")
        second = client.post(f"/api/v1/audits/{audit_id}/continue")

        assert first.status_code == 202
        assert first.json()["accepted"] is True
        assert first.json()["status"] == "crawling"
        assert second.status_code == 409
        assert second.json()["detail"]["error"]["code"] == "CONTINUATION_REJECTED"
        details = second.json()["detail"]["error"]["details"]
        assert details["audit_id"] == audit_id
        assert details["status"] == "crawling"
        assert details["batch_count"] == 0
        assert details["pages_crawled"] == 0
        assert mock_submit.call_count == 2

    def test_continue_pending_rejected(self, client, reset_rate_limiter, mock_submit):
        audit_id = _start(client)["audit_id"]
        response = client.post(f"/api/v1/audits/{audit_id}/continue")
        assert response.status_code == 409

    def test_continue_unknown_audit(self, client):
        response = client.post(f"/api/v1/audits/{'0' * 32}/continue")
        assert response.status_code == 404


class TestStopAudit:
    """Tests for POST /api/v1/audits/{audit_id}/stop."""

    def test_stop_then_stop_again(self, client, reset_rate_limiter, mock_submit):
        audit_id = _start(client)["audit_id"]

        stopped = client.post(f"/api/v1/audits/{audit_id}/stop")
        again = client.post(f"/api/v1/audits/{audit_id}/stop")

        assert stopped.status_code == 200
        assert stopped.json()["status"] == "failed"
        assert stopped.json()["error"] == "Audit was stopped"
        assert again.status_code == 400
        assert again.json()["detail"]["error"]["code"] == "AUDIT_FINISHED"

    def test_stop_unknown_audit(self, client):
        response = client.post(f"/api/v1/audits/{'0' * 32}/stop")
        assert response.status_code == 404


class TestDismissedChecks:
    """Tests for /api/v1/dismissed-checks."""

    def test_dismiss_list_restore(self, client, reset_rate_limiter, mock_submit):
        audit_id = _start(client, url="https://dismiss.example.com")["audit_id"]
        body = {"check_name": "missing_llms_txt", "url": "https://dismiss.example.com/"}

        created = client.post("/api/v1/dismissed-checks", json=body)
        again = client.post("/api/v1/dismissed-checks", json=body)

        assert created.status_code == 201
        assert created.json()["url"] == "https://dismiss.example.com"
        assert again.json()["id"] == created.json()["id"]

        listed = client.get(f"/api/v1/dismissed-checks?audit_id={audit_id}").json()
        assert [d["check_name"] for d in listed["dismissed_checks"]] == ["missing_llms_txt"]

        dismissal_id = created.json()["id"]
        assert client.delete(f"/api/v1/dismissed-checks/{dismissal_id}").status_code == 204
        assert client.delete(f"/api/v1/dismissed-checks/{dismissal_id}").status_code == 404
        listed = client.get(f"/api/v1/dismissed-checks?audit_id={audit_id}").json()
        assert listed["total"] == 0

    def test_unknown_check_rejected(self, client):
        response = client.post(
            "/api/v1/dismissed-checks",
            json={"check_name": "no_such_check", "url": "https://example.com"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == "UNKNOWN_CHECK"

    def test_list_for_unknown_audit(self, client):
        response = client.get(f"/api/v1/dismissed-checks?audit_id={'0' * 32}")

        assert response.status_code == 404
        assert response.json()["detail"]["error"]["code"] == "AUDIT_NOT_FOUND"


class TestCatalogueAndHealth:
    """Tests for /checks and /health."""

    def test_list_checks(self, client):
        data = client.get("/api/v1/checks").json()

        assert data["total"] == len(data["checks"])
        assert set(data["categories"]) == {"seo", "technical", "ai_readiness"}
        assert any(c["name"] == "missing_llms_txt" for c in data["checks"])

    def test_list_checks_by_category(self, client):
        data = client.get("/api/v1/checks?category=technical").json()
        assert {c["category"] for c in data["checks"]} == {"technical"}

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
