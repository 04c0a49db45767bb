"""Tests for the polling client."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from site_audit.client.poller import AuditPoller, PollTimeoutError
from site_audit.config.settings import settings

BASE = "http://audit.test/api/v1"


def _status_response(status: str, **extra) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = {"status": status, **extra}
    return response


def _post_response(status_code: int) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if status_code >= 400 and status_code != 409:
        response.raise_for_status.side_effect = requests.HTTPError(str(status_code))
    return response


def _poller(session, clock=None, timeout=None) -> tuple[AuditPoller, list[float]]:
    sleeps: list[float] = []
    poller = AuditPoller(
        BASE,
        interval=2,
        error_interval=5,
        timeout=timeout,
        session=session,
        sleep=sleeps.append,
        clock=clock or (lambda: 0.0),
    )
    return poller, sleeps


class TestAuditPoller:
    """Tests for AuditPoller.poll."""

    def test_returns_on_completed(self):
        session = MagicMock()
        session.get.side_effect = [
            _status_response("crawling"),
            _status_response("checking"),
            _status_response("completed", scores={"overall": 90}),
        ]
        poller, sleeps = _poller(session)

        final = poller.poll("abc")

        assert final["scores"] == {"overall": 90}
        assert sleeps == [2, 2]
        session.get.assert_called_with(f"{BASE}/audits/abc", timeout=settings.fetcher.request_timeout)
        session.post.assert_not_called()

    def test_returns_on_failed(self):
        session = MagicMock()
        session.get.return_value = _status_response("failed", error="Audit was stopped")
        poller, _ = _poller(session)

        assert poller.poll("abc")["error"] == "Audit was stopped"

    def test_continues_once_per_batch(self):
        """A batch_complete seen on several polls triggers one continuation."""
        session = MagicMock()
        session.get.side_effect = [
            _status_response("batch_complete"),
            _status_response("batch_complete"),
            _status_response("crawling"),
            _status_response("batch_complete"),
            _status_response("completed"),
        ]
        session.post.return_value = _post_response(202)
        poller, _ = _poller(session)

        poller.poll("abc")

        assert session.post.call_count == 2
        session.post.assert_called_with(f"{BASE}/audits/abc/continue", timeout=settings.fetcher.request_timeout)

    def test_back_to_back_batches_each_continued(self):
        """A batch that ends between two polls still gets its own continuation."""
        session = MagicMock()
        session.get.side_effect = [
            _status_response("batch_complete", batch_count=1),
            _status_response("batch_complete", batch_count=2),
            _status_response("batch_complete", batch_count=2),
            _status_response("completed", batch_count=3),
        ]
        session.post.return_value = _post_response(202)
        poller, _ = _poller(session)

        assert poller.poll("abc")["status"] == "completed"
        assert session.post.call_count == 2

    def test_conflict_is_not_an_error(self):
        session = MagicMock()
        session.get.side_effect = [_status_response("batch_complete"), _status_response("completed")]
        session.post.return_value = _post_response(409)
        poller, sleeps = _poller(session)

        assert poller.poll("abc")["status"] == "completed"
        assert sleeps == [2]

    def test_status_errors_are_retried(self):
        session = MagicMock()
        session.get.side_effect = [
            requests.ConnectionError("down"),
            _status_response("completed"),
        ]
        poller, sleeps = _poller(session)

        assert poller.poll("abc")["status"] == "completed"
        assert sleeps == [5]

    def test_failed_continuation_is_retried(self):
        session = MagicMock()
        session.get.side_effect = [
            _status_response("batch_complete"),
            _status_response("batch_complete"),
            _status_response("completed"),
        ]
        session.post.side_effect = [_post_response(500), _post_response(202)]
        poller, sleeps = _poller(session)

        poller.poll("abc")

        assert session.post.call_count == 2
        assert sleeps == [5, 2]

    def test_progress_callback(self):
        session = MagicMock()
        session.get.side_effect = [_status_response("crawling"), _status_response("completed")]
        poller, _ = _poller(session)
        seen = []

        poller.poll("abc", on_progress=lambda data: seen.append(data["status"]))

        assert seen == ["crawling", "completed"]

    def test_timeout(self):
        session = MagicMock()
        session.get.return_value = _status_response("crawling")
        ticks = iter(range(0, 100, 10))
        poller, _ = _poller(session, clock=lambda: float(next(ticks)), timeout=25)

        with pytest.raises(PollTimeoutError):
            poller.poll("abc")
