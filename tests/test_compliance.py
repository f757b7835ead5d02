"""
test_compliance.py — Unit tests for the indicator compliance engine.

Tests cover:
    - Percentage formula (no-data zero rule, maximize, minimize)
    - Status mapping (thresholds, inverted thresholds, Neutral / InProgress)
    - Temporal clamping in realTime vs definitive mode
    - Accumulative vs average accumulation
    - Weekly indicators
    - Capture percentage and data-quality warnings
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from scorecard.compliance import (
    capture_pct,
    compliance_percentage,
    compute_compliance,
    evaluated_month,
    missing_months_warning,
    overdue_warning,
    status_for_percentage,
)
from scorecard.models import (
    CalculationMode,
    ComplianceStatus,
    ComplianceThresholds,
    Dashboard,
    Frequency,
    GoalType,
    Indicator,
    IndicatorKind,
    IndicatorType,
    RealId,
)

NOW = datetime(2025, 3, 15)
THRESHOLDS = ComplianceThresholds(on_track=95, at_risk=80)


def _pad(values):
    return list(values) + [0] * (12 - len(values))


def _indicator(goals, progress, kind=IndicatorKind.AVERAGE, goal_type=GoalType.MAXIMIZE, **kw):
    return Indicator(
        id=kw.pop("id", 1), name=kw.pop("name", "Ventas"), weight=kw.pop("weight", 1),
        kind=kind, goal_type=goal_type,
        monthly_goals=_pad(goals), monthly_progress=_pad(progress), **kw,
    )


# ---------------------------------------------------------------------------
# Percentage formula
# ---------------------------------------------------------------------------

class TestCompliancePercentage:
    """Tests for compliance_percentage."""

    @pytest.mark.parametrize("lower_is_better", [True, False])
    def test_no_data_is_zero(self, lower_is_better):
        assert compliance_percentage(0, 0, lower_is_better) == 0

    @pytest.mark.parametrize("actual, expected", [(25, 200), (100, 50), (0, 100), (50, 100)])
    def test_minimize_ceiling(self, actual, expected):
        assert compliance_percentage(actual, 50, True) == pytest.approx(expected)

    @pytest.mark.parametrize("actual, expected", [(40, 50), (80, 100), (160, 200)])
    def test_maximize_linear(self, actual, expected):
        assert compliance_percentage(actual, 80, False) == pytest.approx(expected)

    def test_zero_target_maximize(self):
        assert compliance_percentage(5, 0, False) == 100
        assert compliance_percentage(-5, 0, False) == 0

    def test_zero_target_minimize(self):
        assert compliance_percentage(5, 0, True) == 0

    def test_malformed_inputs_degrade_to_zero(self):
        assert compliance_percentage(None, float("nan"), False) == 0
        assert compliance_percentage("abc", 100, False) == 0


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------

class TestStatusForPercentage:
    """Tests for status_for_percentage."""

    def test_boundaries(self):
        assert status_for_percentage(95, THRESHOLDS) is ComplianceStatus.ON_TRACK
        assert status_for_percentage(94.99, THRESHOLDS) is ComplianceStatus.AT_RISK
        assert status_for_percentage(80, THRESHOLDS) is ComplianceStatus.AT_RISK
        assert status_for_percentage(79.9, THRESHOLDS) is ComplianceStatus.OFF_TRACK

    def test_inactive_is_neutral(self):
        assert status_for_percentage(100, THRESHOLDS, is_active=False) is ComplianceStatus.NEUTRAL

    def test_open_period_is_in_progress(self):
        status = status_for_percentage(10, THRESHOLDS, is_closed_period=False)
        assert status is ComplianceStatus.IN_PROGRESS

    def test_non_finite_is_off_track(self):
        assert status_for_percentage(float("nan"), THRESHOLDS) is ComplianceStatus.OFF_TRACK

    def test_inverted_thresholds_compared_literally(self):
        inverted = ComplianceThresholds(on_track=70, at_risk=90)
        assert status_for_percentage(75, inverted) is ComplianceStatus.ON_TRACK
        assert status_for_percentage(65, inverted) is ComplianceStatus.OFF_TRACK

    def test_missing_thresholds_use_defaults(self):
        assert status_for_percentage(90, None) is ComplianceStatus.AT_RISK


# ---------------------------------------------------------------------------
# compute_compliance
# ---------------------------------------------------------------------------

class TestTemporalClamp:
    """realTime vs definitive month selection."""

    def test_definitive_uses_closed_months_only(self):
        item = _indicator([100, 100, 100], [90, 100, 110])
        result = compute_compliance(item, THRESHOLDS, 2025, CalculationMode.DEFINITIVE, now=NOW)
        assert result.evaluated_month == 1
        assert result.current_progress == pytest.approx(95)
        assert result.status is ComplianceStatus.ON_TRACK

    def test_real_time_includes_open_month_with_data(self):
        item = _indicator([100, 100, 100], [90, 100, 110])
        result = compute_compliance(item, THRESHOLDS, 2025, CalculationMode.REAL_TIME, now=NOW)
        assert result.evaluated_month == 2
        assert result.current_progress == pytest.approx(100)
        assert result.status is ComplianceStatus.IN_PROGRESS

    def test_real_time_capped_at_current_month(self):
        item = _indicator([100] * 12, [100] * 12)
        result = compute_compliance(item, THRESHOLDS, 2025, now=NOW)
        assert result.evaluated_month == 2

    def test_real_time_steps_back_when_open_month_has_goal_only(self):
        item = _indicator([100, 100, 100], [90, 100, 0])
        assert evaluated_month(item.monthly_progress, item.monthly_goals,
                               2025, NOW, CalculationMode.REAL_TIME) == 1

    def test_past_year_uses_all_months(self):
        item = _indicator([100] * 12, [100] * 12)
        result = compute_compliance(item, THRESHOLDS, 2024, CalculationMode.DEFINITIVE, now=NOW)
        assert result.evaluated_month == 11
        assert result.is_closed_period

    def test_future_year_counts_nothing(self):
        item = _indicator([100] * 12, [100] * 12)
        result = compute_compliance(item, THRESHOLDS, 2026, now=NOW)
        assert not result.is_active
        assert result.status is ComplianceStatus.NEUTRAL
        assert result.overall_percentage == 0


class TestScenarios:
    """Worked examples."""

    def test_average_over_months_with_data(self):
        item = _indicator([100, 100, 100], [100, 100, 50])
        result = compute_compliance(item, THRESHOLDS, 2025, CalculationMode.REAL_TIME, now=NOW)
        assert result.current_target == pytest.approx(100)
        assert result.current_progress == pytest.approx(83.333, abs=1e-3)
        assert result.overall_percentage == pytest.approx(83.33, abs=1e-2)
        assert result.is_active

    def test_average_skips_empty_months(self):
        item = _indicator([100, 0, 100], [80, 0, 100])
        result = compute_compliance(item, THRESHOLDS, 2024, now=NOW)
        assert result.current_progress == pytest.approx(90)
        assert result.current_target == pytest.approx(100)

    def test_accumulative_sums_through_limit(self):
        item = _indicator([100] * 5, [120] * 5, kind=IndicatorKind.ACCUMULATIVE)
        result = compute_compliance(item, THRESHOLDS, 2024, now=NOW)
        assert result.current_target == 500
        assert result.current_progress == 600
        assert result.overall_percentage == pytest.approx(120)
        assert result.status is ComplianceStatus.ON_TRACK

    def test_minimize_indicator(self):
        item = _indicator([10] * 12, [20] * 12, goal_type=GoalType.MINIMIZE)
        result = compute_compliance(item, THRESHOLDS, 2024, now=NOW)
        assert result.overall_percentage == pytest.approx(50)
        assert result.status is ComplianceStatus.OFF_TRACK

    def test_no_data_is_neutral(self):
        result = compute_compliance(_indicator([], []), THRESHOLDS, 2024, now=NOW)
        assert not result.is_active
        assert result.status is ComplianceStatus.NEUTRAL

    def test_item_thresholds_override_dashboard(self):
        item = _indicator([100] * 12, [85] * 12,
                          thresholds=ComplianceThresholds(on_track=80, at_risk=60))
        result = compute_compliance(item, THRESHOLDS, 2024, now=NOW)
        assert result.status is ComplianceStatus.ON_TRACK

    def test_none_values_treated_as_zero(self):
        item = Indicator(id=1, name="x", weight=1,
                         monthly_goals=[100, None] + [None] * 10,
                         monthly_progress=[100, float("nan")] + [None] * 10)
        result = compute_compliance(item, THRESHOLDS, 2024, now=NOW)
        assert result.overall_percentage == pytest.approx(100)

    def test_formula_indicator_uses_context(self):
        base = _indicator([100] * 12, [50] * 12, id=1)
        formula = Indicator(id=2, name="Doble", weight=1, indicator_type=IndicatorType.FORMULA,
                            formula="{id:1} * 2")
        result = compute_compliance(formula, THRESHOLDS, 2024, now=NOW, context=[base, formula])
        assert result.current_target == pytest.approx(200)
        assert result.current_progress == pytest.approx(100)


class TestWeeklyCompliance:
    """Weekly indicators go through period normalisation first."""

    def _weekly(self):
        return Indicator(id=9, name="Visitas", weight=1, kind=IndicatorKind.ACCUMULATIVE,
                         frequency=Frequency.WEEKLY,
                         weekly_goals=[10] * 53, weekly_progress=[10] * 53)

    def test_definitive_includes_current_month(self):
        result = compute_compliance(self._weekly(), THRESHOLDS, 2025,
                                    CalculationMode.DEFINITIVE, now=NOW)
        assert result.evaluated_month == 2
        assert result.overall_percentage == pytest.approx(100)
        assert result.is_closed_period
        assert result.status is ComplianceStatus.ON_TRACK

    def test_future_year_is_neutral(self):
        result = compute_compliance(self._weekly(), THRESHOLDS, 2026, now=NOW)
        assert result.status is ComplianceStatus.NEUTRAL


# ---------------------------------------------------------------------------
# Capture and warnings
# ---------------------------------------------------------------------------

class TestCapturePct:
    """Tests for capture_pct."""

    def _board(self, **kw):
        items = [
            Indicator(id=1, name="a", monthly_goals=[1, 1] + [None] * 10,
                      monthly_progress=[1, 5] + [None] * 10),
            Indicator(id=2, name="b", monthly_goals=[1, 1] + [None] * 10,
                      monthly_progress=[1, None] + [None] * 10),
            Indicator(id=3, name="c", monthly_goals=[0, 0] + [None] * 10,
                      monthly_progress=[0, 0] + [None] * 10),
            Indicator(id=4, name="d", monthly_goals=[0, 10] + [None] * 10,
                      monthly_progress=[0, 0] + [None] * 10),
        ]
        return Dashboard(id=RealId(1), title="t", items=items, year=kw.pop("year", 2025), **kw)

    def test_counts_real_values_in_last_closed_month(self):
        assert capture_pct(self._board(), NOW) == 50

    def test_target_count_overrides_denominator(self):
        assert capture_pct(self._board(target_indicator_count=8), NOW) == 25

    @pytest.mark.parametrize("count", [-2, 0])
    def test_non_positive_target_count_is_ignored(self, count):
        assert capture_pct(self._board(target_indicator_count=count), NOW) == 50

    def test_january_and_future_year_are_complete(self):
        assert capture_pct(self._board(), datetime(2025, 1, 10)) == 100
        assert capture_pct(self._board(year=2026), NOW) == 100

    def test_empty_board(self):
        assert capture_pct(Dashboard(id=RealId(2), title="e"), NOW) == 100

    def test_past_year_checks_december(self):
        assert capture_pct(self._board(year=2024), NOW) == 0


class TestWarnings:
    """Tests for missing_months_warning / overdue_warning."""

    def test_missing_months_lists_incomplete_months(self):
        warning = missing_months_warning([1, None, 3] + [None] * 9, [1, 2, None] + [None] * 9)
        assert "Feb" in warning and "Mar" in warning
        assert "Jan" not in warning

    def test_missing_months_none_when_consistent(self):
        assert missing_months_warning([1] * 12, [1] * 12) is None

    def test_overdue_lists_closed_empty_months(self):
        warning = overdue_warning([1] + [None] * 11, [1] + [None] * 11, 2025, NOW)
        assert warning == "Overdue period: no data captured for Feb."

    def test_overdue_future_year(self):
        assert overdue_warning([], [], 2026, NOW) is None
