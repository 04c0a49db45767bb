"""Background execution of audit batches."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from site_audit.config.settings import settings
from site_audit.pipeline.service import AuditService

logger = logging.getLogger(__name__)


class AuditRunner:
    """Runs audit batches on a thread pool, never two batches of one audit at once.

    A submit that arrives while a batch of the same audit is still running
    is remembered and served by the running worker as soon as it finishes,
    so a continuation claimed in that window is not lost.
    """

    def __init__(self, service: AuditService, max_workers: int | None = None):
        self.service = service
        self.max_workers = max_workers or settings.api.runner_max_workers
        self._lock = threading.Lock()
        self._active: set[str] = set()
        self._rerun: set[str] = set()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="audit-batch"
        )

    def submit(self, audit_id: str) -> bool:
        """Schedule a batch. Returns False if one is already running for the audit."""
        with self._lock:
            if audit_id in self._active:
                self._rerun.add(audit_id)
                return False
            self._active.add(audit_id)

        self._executor.submit(self._run_batches, audit_id)
        return True

    def is_running(self, audit_id: str) -> bool:
        with self._lock:
            return audit_id in self._active

    def _run_batches(self, audit_id: str) -> None:
        """Run batches for an audit (executed in thread pool)."""
        while True:
            try:
                self.service.run_batch(audit_id)
            except Exception:
                logger.exception("Batch for audit %s crashed", audit_id)

            with self._lock:
                if audit_id in self._rerun:
                    self._rerun.discard(audit_id)
                    continue
                self._active.discard(audit_id)
                return

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the executor."""
        self._executor.shutdown(wait=wait)


# Global service and runner instances
audit_service = AuditService()
audit_runner = AuditRunner(audit_service)
