"""Aggregate check results into per-category and overall scores."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from site_audit.checks.base import CheckCategory, CheckPriority, CheckStatus
from site_audit.config.settings import settings


class ScorableResult(Protocol):
    category: CheckCategory | str
    priority: CheckPriority | str
    status: CheckStatus | str


@dataclass(frozen=True)
class AuditScores:
    """Scores for a finished audit; a category with no results scores None."""
    overall: int | None
    seo: int | None
    technical: int | None
    ai_readiness: int | None
    passed_count: int = 0
    warning_count: int = 0
    failed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def round_half_up(value: Decimal | float) -> int:
    """Round to the nearest integer, with .5 always rounding up."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _weight(priority: CheckPriority) -> int:
    cfg = settings.scoring
    return {
        CheckPriority.CRITICAL: cfg.critical_weight,
        CheckPriority.RECOMMENDED: cfg.recommended_weight,
        CheckPriority.OPTIONAL: cfg.optional_weight,
    }[priority]


def _credit(status: CheckStatus) -> Decimal:
    if status == CheckStatus.PASSED:
        return Decimal(1)
    if status == CheckStatus.WARNING:
        return Decimal(str(settings.scoring.warning_credit))
    return Decimal(0)


def score(results: Iterable[ScorableResult]) -> AuditScores:
    """Compute category and overall scores.

    Each result earns ``weight * credit`` out of ``weight``, where the weight
    comes from its priority and the credit from its status. A category score
    is the earned share of the possible total, as a rounded percentage. The
    overall score is the mean of the non-null category scores.

    Args:
        results: Check results carrying category, priority and status

    Returns:
        AuditScores with counts of passed, warning and failed results
    """
    earned: dict[CheckCategory, Decimal] = {c: Decimal(0) for c in CheckCategory}
    possible: dict[CheckCategory, Decimal] = {c: Decimal(0) for c in CheckCategory}
    counts = {s: 0 for s in CheckStatus}

    for result in results:
        category = CheckCategory(result.category)
        priority = CheckPriority(result.priority)
        status = CheckStatus(result.status)
        weight = Decimal(_weight(priority))
        earned[category] += weight * _credit(status)
        possible[category] += weight
        counts[status] += 1

    category_scores: dict[CheckCategory, int | None] = {}
    for category in CheckCategory:
        if possible[category] == 0:
            category_scores[category] = None
        else:
            category_scores[category] = round_half_up(100 * earned[category] / possible[category])

    present = [s for s in category_scores.values() if s is not None]
    overall = round_half_up(Decimal(sum(present)) / len(present)) if present else None

    return AuditScores(
        overall=overall,
        seo=category_scores[CheckCategory.SEO],
        technical=category_scores[CheckCategory.TECHNICAL],
        ai_readiness=category_scores[CheckCategory.AI_READINESS],
        passed_count=counts[CheckStatus.PASSED],
        warning_count=counts[CheckStatus.WARNING],
        failed_count=counts[CheckStatus.FAILED],
    )


def grade_for(value: int | None) -> str | None:
    """Map a 0-100 score to a letter grade."""
    if value is None:
        return None
    cfg = settings.scoring
    if value >= cfg.grade_a_threshold:
        return "A"
    if value >= cfg.grade_b_threshold:
        return "B"
    if value >= cfg.grade_c_threshold:
        return "C"
    if value >= cfg.grade_d_threshold:
        return "D"
    return "F"
