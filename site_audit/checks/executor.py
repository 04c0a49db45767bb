"""Run checks against contexts, isolating failures of individual checks."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor

from site_audit.checks.base import BaseCheck, CheckContext, CheckOutcome, CheckStatus
from site_audit.config.settings import settings

logger = logging.getLogger(__name__)

CheckRun = tuple[BaseCheck, CheckOutcome]


def run_check(check: BaseCheck, context: CheckContext) -> CheckOutcome:
    """Run one check; an exception becomes a failed outcome instead of propagating."""
    try:
        outcome = check.run(context)
    except Exception as e:
        logger.warning("Check %s raised on %s: %s", check.name, context.url, e)
        return CheckOutcome.failed(
            f"Check could not be completed: {e}",
            error=type(e).__name__,
        )

    if not isinstance(outcome, CheckOutcome):
        return CheckOutcome.failed(
            f"Check returned an invalid result: {type(outcome).__name__}",
            error="InvalidResult",
        )
    if "message" not in outcome.details:
        default = "Check passed" if outcome.status == CheckStatus.PASSED else "Check did not pass"
        outcome.details = {"message": default, **outcome.details}
    return outcome


class CheckExecutor:
    """Runs checks for pages on a bounded thread pool.

    Usage:
        executor = CheckExecutor(workers=4)
        runs = executor.run_page_checks(context, registry.page_checks())
    """

    def __init__(self, workers: int | None = None):
        self.workers = max(1, workers or settings.batch.check_workers)

    @staticmethod
    def _select(checks: Iterable[BaseCheck], skip: Iterable[str]) -> list[BaseCheck]:
        skipped = set(skip)
        return [c for c in checks if c.name not in skipped]

    def run_page_checks(
        self,
        context: CheckContext,
        checks: Iterable[BaseCheck],
        skip: Iterable[str] = (),
    ) -> list[CheckRun]:
        """Run per-page checks sequentially for one page, skipping names in ``skip``."""
        return [(c, run_check(c, context)) for c in self._select(checks, skip)]

    def run_site_wide_checks(
        self,
        context: CheckContext,
        checks: Iterable[BaseCheck],
        skip: Iterable[str] = (),
    ) -> list[CheckRun]:
        """Run site-wide checks concurrently; results keep the order of ``checks``."""
        selected = self._select(checks, skip)
        if not selected:
            return []
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="site-check") as pool:
            outcomes = list(pool.map(lambda c: run_check(c, context), selected))
        return list(zip(selected, outcomes))

    def run_pages(
        self,
        contexts: Sequence[CheckContext],
        checks: Sequence[BaseCheck],
        skips: Sequence[Iterable[str]] | None = None,
    ) -> list[list[CheckRun]]:
        """Run per-page checks for several pages at once.

        Returns:
            One list of (check, outcome) per context, in input order
        """
        if not contexts:
            return []
        skips = skips if skips is not None else [()] * len(contexts)
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="page-check") as pool:
            return list(
                pool.map(
                    lambda item: self.run_page_checks(item[0], checks, item[1]),
                    zip(contexts, skips),
                )
            )
