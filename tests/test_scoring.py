"""
test_scoring.py — Unit tests for dashboard scoring.

Tests cover:
    - Weighted score with dynamic weight redistribution
    - 200% per-indicator cap
    - Zero-weight / empty indicator sets
    - Monthly trend (None for months without data)
    - Dashboard score card
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from scorecard.models import (
    CalculationMode,
    ComplianceStatus,
    ComplianceThresholds,
    Dashboard,
    Indicator,
    IndicatorKind,
    RealId,
)
from scorecard.scoring import monthly_scores, score_dashboard, trend_limit, weighted_score

NOW = datetime(2025, 3, 15)
THRESHOLDS = ComplianceThresholds(on_track=95, at_risk=80)


def _item(item_id, weight, goals, progress, kind=IndicatorKind.AVERAGE):
    return Indicator(
        id=item_id, name=f"KPI {item_id}", weight=weight, kind=kind,
        monthly_goals=list(goals) + [None] * (12 - len(goals)),
        monthly_progress=list(progress) + [None] * (12 - len(progress)),
    )


class TestWeightedScore:
    """Tests for weighted_score."""

    def test_inactive_weight_is_redistributed(self):
        items = [
            _item(1, 50, [], []),
            _item(2, 50, [100] * 12, [80] * 12),
        ]
        assert weighted_score(items, THRESHOLDS, 2024, now=NOW) == 80.0

    def test_percentage_capped_at_200(self):
        items = [
            _item(1, 1, [100] * 12, [500] * 12),
            _item(2, 1, [100] * 12, [100] * 12),
        ]
        assert weighted_score(items, THRESHOLDS, 2024, now=NOW) == 150.0

    def test_accumulative_under_cap(self):
        items = [_item(1, 1, [100] * 5, [120] * 5, IndicatorKind.ACCUMULATIVE)]
        assert weighted_score(items, THRESHOLDS, 2024, now=NOW) == 120.0

    def test_weights_are_relative(self):
        items = [
            _item(1, 3, [100] * 12, [100] * 12),
            _item(2, 1, [100] * 12, [60] * 12),
        ]
        assert weighted_score(items, THRESHOLDS, 2024, now=NOW) == 90.0

    def test_no_active_indicators_scores_zero(self):
        assert weighted_score([_item(1, 10, [], [])], THRESHOLDS, 2024, now=NOW) == 0.0

    def test_all_zero_weights_score_zero(self):
        assert weighted_score([_item(1, 0, [100], [100])], THRESHOLDS, 2024, now=NOW) == 0.0

    def test_empty_set_scores_zero(self):
        assert weighted_score([], THRESHOLDS, 2025, now=NOW) == 0.0

    def test_one_decimal(self):
        items = [_item(1, 1, [3] * 12, [1] * 12)]
        assert weighted_score(items, THRESHOLDS, 2024, now=NOW) == 33.3

    @pytest.mark.parametrize("bad_weight", [float("nan"), float("inf"), -50])
    def test_unusable_weight_counts_as_zero(self, bad_weight):
        items = [
            _item(1, bad_weight, [100] * 12, [80] * 12),
            _item(2, 50, [100] * 12, [80] * 12),
        ]
        assert weighted_score(items, THRESHOLDS, 2024, now=NOW) == 80.0


class TestMonthlyScores:
    """Tests for monthly_scores / trend_limit."""

    def test_months_without_data_are_none(self):
        items = [
            _item(1, 1, [100, 100], [50, 100]),
            _item(2, 1, [100], [100]),
        ]
        scores = monthly_scores(items, THRESHOLDS, 2024)
        assert scores[0] == 75.0
        assert scores[1] == 100.0
        assert scores[2:] == [None] * 10

    def test_each_month_is_independent(self):
        items = [_item(1, 1, [100, 100], [50, 150], IndicatorKind.ACCUMULATIVE)]
        assert monthly_scores(items, THRESHOLDS, 2024)[:2] == [50.0, 150.0]

    def test_limit_month(self):
        items = [_item(1, 1, [100] * 12, [100] * 12)]
        scores = monthly_scores(items, THRESHOLDS, 2025, limit_month=1)
        assert scores[:2] == [100.0, 100.0]
        assert scores[2] is None

    def test_cap_applies_per_month(self):
        items = [_item(1, 1, [10], [100])]
        assert monthly_scores(items, THRESHOLDS, 2024)[0] == 200.0

    @pytest.mark.parametrize("bad_weight", [float("nan"), -50])
    def test_unusable_weight_keeps_other_indicators(self, bad_weight):
        items = [
            _item(1, bad_weight, [100] * 12, [80] * 12),
            _item(2, 50, [100] * 12, [80] * 12),
        ]
        scores = monthly_scores(items, THRESHOLDS, 2024, now=NOW)
        assert scores[0] == 80.0
        assert scores[11] == 80.0

    @pytest.mark.parametrize("year, mode, expected", [
        (2024, CalculationMode.REAL_TIME, 11),
        (2025, CalculationMode.REAL_TIME, 2),
        (2025, CalculationMode.DEFINITIVE, 1),
        (2026, CalculationMode.REAL_TIME, -1),
    ])
    def test_trend_limit(self, year, mode, expected):
        assert trend_limit(year, NOW, mode) == expected


class TestScoreDashboard:
    """Tests for score_dashboard."""

    def test_score_card(self):
        board = Dashboard(
            id=RealId(1), title="Zona Sur", year=2024,
            items=[_item(1, 50, [], []), _item(2, 50, [100] * 12, [98] * 12)],
        )
        card = score_dashboard(board, THRESHOLDS, 2024, now=NOW)
        assert card.dashboard_id == "1"
        assert card.score == 98.0
        assert card.status is ComplianceStatus.ON_TRACK
        assert card.active_indicators == 1
        assert len(card.monthly_scores) == 12
        assert card.monthly_scores[11] == 98.0

    def test_dashboard_thresholds_override_default(self):
        board = Dashboard(
            id=RealId(2), title="b", year=2024,
            thresholds=ComplianceThresholds(on_track=99, at_risk=97),
            items=[_item(1, 1, [100] * 12, [98] * 12)],
        )
        card = score_dashboard(board, THRESHOLDS, 2024, now=NOW)
        assert card.status is ComplianceStatus.AT_RISK

    def test_empty_dashboard_is_neutral(self):
        card = score_dashboard(Dashboard(id=RealId(3), title="e"), THRESHOLDS, 2025, now=NOW)
        assert card.score == 0.0
        assert card.status is ComplianceStatus.NEUTRAL
        assert card.monthly_scores == [None] * 12
