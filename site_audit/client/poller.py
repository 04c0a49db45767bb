"""Client side of the continuation protocol."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from site_audit.config.settings import settings

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "failed"})


class PollTimeoutError(Exception):
    """Raised when an audit does not finish within the poll timeout."""


class AuditPoller:
    """Polls an audit until it finishes, triggering continuation between batches.

    A continuation is requested once per observed batch. Batches are told
    apart by the ``batch_count`` of the payload, so a batch that ends between
    two polls still gets its continuation; without a ``batch_count`` the
    poller waits until the audit leaves ``batch_complete`` before it may send
    another. A 409 answer means another client already claimed the
    batch and is not an error.

    Usage:
        poller = AuditPoller("http://localhost:8000/api/v1")
        final = poller.poll(audit_id)
    """

    def __init__(
        self,
        base_url: str,
        interval: float | None = None,
        error_interval: float | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.interval = settings.api.poll_interval if interval is None else interval
        self.error_interval = (
            settings.api.poll_error_interval if error_interval is None else error_interval
        )
        self.timeout = timeout
        self._http = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    def _status(self, audit_id: str) -> dict[str, Any]:
        response = self._http.get(
            f"{self.base_url}/audits/{audit_id}",
            timeout=settings.fetcher.request_timeout,
        )
        response.raise_for_status()
        return response.json()

    def _continue(self, audit_id: str) -> bool:
        response = self._http.post(
            f"{self.base_url}/audits/{audit_id}/continue",
            timeout=settings.fetcher.request_timeout,
        )
        if response.status_code == 409:
            logger.debug("Continuation of %s already claimed", audit_id)
            return False
        response.raise_for_status()
        return True

    def poll(
        self,
        audit_id: str,
        on_progress: Callable[[dict[str, Any]], None] | None = None,
    ) -> dict[str, Any]:
        """Poll until the audit is completed or failed.

        Args:
            audit_id: Audit to follow
            on_progress: Called with every status payload received

        Returns:
            The final status payload

        Raises:
            PollTimeoutError: If ``timeout`` elapses first
        """
        started = self._clock()
        continuing = False
        continued_batch = None

        while True:
            if self.timeout is not None and self._clock() - started >= self.timeout:
                raise PollTimeoutError(f"Audit {audit_id} did not finish within {self.timeout:g}s")

            try:
                data = self._status(audit_id)
            except requests.RequestException as e:
                logger.warning("Polling %s failed: %s; retrying", audit_id, e)
                self._sleep(self.error_interval)
                continue

            if on_progress is not None:
                on_progress(data)

            status = data.get("status")
            if status in TERMINAL_STATUSES:
                return data

            if status == "batch_complete":
                batch = data.get("batch_count")
                if not continuing or batch != continued_batch:
                    continuing = True
                    continued_batch = batch
                    try:
                        self._continue(audit_id)
                    except requests.RequestException as e:
                        logger.warning("Continuation of %s failed: %s; retrying", audit_id, e)
                        continuing = False
                        self._sleep(self.error_interval)
                        continue
            else:
                continuing = False

            self._sleep(self.interval)
