"""Tests for score aggregation."""
from __future__ import annotations

import random
from decimal import Decimal
from types import SimpleNamespace

import pytest

from site_audit.checks.base import CheckCategory, CheckPriority, CheckStatus
from site_audit.scoring.scorer import AuditScores, grade_for, round_half_up, score


def _result(category="seo", priority="critical", status="passed"):
    return SimpleNamespace(category=category, priority=priority, status=status)


class TestRoundHalfUp:
    """Tests for round_half_up."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0.5, 1), (1.5, 2), (2.5, 3), (62.5, 63), (62.4999, 62), (Decimal("87.5"), 88)],
    )
    def test_half_rounds_up(self, value, expected):
        assert round_half_up(value) == expected


class TestScore:
    """Tests for score()."""

    def test_no_results(self):
        scores = score([])
        assert scores == AuditScores(overall=None, seo=None, technical=None, ai_readiness=None)

    def test_all_passed(self):
        scores = score([_result(), _result(category="technical"), _result(category="ai_readiness")])
        assert scores.overall == 100
        assert scores.seo == scores.technical == scores.ai_readiness == 100
        assert scores.passed_count == 3

    def test_weights_and_warning_credit(self):
        """critical failed (0/3) + recommended warning (1/2) + optional passed (1/1) = 2/6."""
        results = [
            _result(priority="critical", status="failed"),
            _result(priority="recommended", status="warning"),
            _result(priority="optional", status="passed"),
        ]
        scores = score(results)
        assert scores.seo == 33
        assert scores.failed_count == 1
        assert scores.warning_count == 1
        assert scores.passed_count == 1

    def test_mixed_priorities(self):
        """critical passed + critical warning + recommended failed + recommended passed = 6.5/10."""
        results = [
            _result(priority="critical", status="passed"),
            _result(priority="critical", status="warning"),
            _result(priority="recommended", status="failed"),
            _result(priority="recommended", status="passed"),
        ]
        assert score(results).seo == 65

    def test_category_rounding_half_up(self):
        """5 of 8 weighted points is 62.5, which rounds to 63."""
        scores = score([
            _result(priority="critical", status="passed"),
            _result(priority="recommended", status="passed"),
            _result(priority="critical", status="failed"),
        ])
        assert scores.seo == 63

    def test_optional_warning_alone(self):
        assert score([_result(priority="optional", status="warning")]).seo == 50

    def test_missing_category_is_null_and_excluded(self):
        scores = score([
            _result(category="seo", status="passed"),
            _result(category="technical", status="failed"),
        ])
        assert scores.ai_readiness is None
        assert scores.overall == 50

    def test_overall_is_mean_of_categories(self):
        scores = score([
            _result(category="seo", priority="recommended", status="warning"),
            _result(category="technical", status="passed"),
        ])
        assert scores.overall == 75

        scores = score([
            _result(category="seo", priority="optional", status="passed"),
            _result(category="technical", priority="optional", status="failed"),
            _result(category="ai_readiness", priority="optional", status="passed"),
            _result(category="ai_readiness", priority="optional", status="warning"),
        ])
        # seo 100, technical 0, ai 75 -> 58.33
        assert scores.ai_readiness == 75
        assert scores.overall == 58

    def test_accepts_enums(self):
        scores = score([
            _result(CheckCategory.SEO, CheckPriority.CRITICAL, CheckStatus.WARNING),
        ])
        assert scores.seo == 50

    def test_order_independent(self):
        results = [
            _result(category=c, priority=p, status=s)
            for c in ("seo", "technical", "ai_readiness")
            for p in ("critical", "recommended", "optional")
            for s in ("passed", "warning", "failed")
        ]
        expected = score(results)
        shuffled = list(results)
        random.Random(7).shuffle(shuffled)
        assert score(shuffled) == expected

    def test_to_dict(self):
        scores = score([_result(), _result(category="technical", status="failed")])
        data = scores.to_dict()

        assert data["seo"] == 100
        assert data["technical"] == 0
        assert data["ai_readiness"] is None
        assert data["overall"] == 50
        assert data["passed_count"] == data["failed_count"] == 1


class TestGrade:
    """Tests for grade_for."""

    @pytest.mark.parametrize(
        "value,grade",
        [(100, "A"), (90, "A"), (89, "B"), (75, "B"), (60, "C"), (40, "D"), (39, "F"), (0, "F"), (None, None)],
    )
    def test_grade_thresholds(self, value, grade):
        assert grade_for(value) == grade
