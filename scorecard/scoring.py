"""
scoring.py — Dashboard weighted score and monthly trend.

A dashboard's score is the weighted mean of its active indicators'
compliance percentages, each capped at 200%. Indicators without data for the
period are left out of both numerator and denominator, so their weight is
redistributed over the rest.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from .compliance import (
    DEFAULT_THRESHOLDS,
    ComplianceResult,
    capture_pct,
    compliance_percentage,
    compute_compliance,
    period_series,
    status_for_percentage,
)
from .formulas import resolve_monthly_series
from .models import (
    MONTHS_PER_YEAR,
    CalculationMode,
    ComplianceStatus,
    ComplianceThresholds,
    Dashboard,
    Indicator,
    coerce_number,
    value_at,
)

logger = logging.getLogger(__name__)

PERCENTAGE_CAP = 200.0


@dataclass(frozen=True)
class DashboardScoreCard:
    """Score, status and trend of one dashboard for one pass."""
    dashboard_id: str
    title: str
    score: float
    status: ComplianceStatus
    monthly_scores: list
    indicators: list = field(default_factory=list)   # (Indicator, ComplianceResult)
    capture_pct: int = 100

    @property
    def active_indicators(self) -> int:
        return sum(1 for _, result in self.indicators if result.is_active)


def _capped(percentage: float) -> float:
    if not math.isfinite(percentage):
        return 0.0
    return min(percentage, PERCENTAGE_CAP)


def _weight(item: Indicator) -> float:
    """Usable weight of an indicator; non-numeric or negative weights count as 0."""
    return max(coerce_number(item.weight), 0.0)


def weighted_score(
    items: Sequence[Indicator],
    thresholds: Optional[ComplianceThresholds],
    year: int,
    mode: CalculationMode = CalculationMode.REAL_TIME,
    *,
    now: date,
) -> float:
    """Weighted compliance score (one decimal) of a set of indicators.

    Returns:
        Score in percent; 0 when no indicator is active or all weights are 0.
    """
    total = 0.0
    weight_sum = 0.0
    for item in items:
        result = compute_compliance(item, thresholds, year, mode, now=now, context=items)
        if not result.is_active:
            continue
        weight = _weight(item)
        total += _capped(result.overall_percentage) * weight
        weight_sum += weight

    if weight_sum == 0:
        return 0.0
    return round(total / weight_sum, 1)


def monthly_scores(
    items: Sequence[Indicator],
    thresholds: Optional[ComplianceThresholds],
    year: int,
    limit_month: int = MONTHS_PER_YEAR - 1,
    *,
    now: Optional[date] = None,
) -> list:
    """Per-month weighted score, each month computed on its own.

    ``thresholds`` does not change the numbers (the trend is a raw
    percentage). When ``now`` is given, weekly indicators are normalised to
    months first; otherwise their stored monthly arrays are used.

    Returns:
        12 values; None for months after ``limit_month`` or without any
        active indicator.
    """
    series = []
    for item in items:
        if now is not None:
            series.append((item, period_series(item, year, now, items)))
        else:
            series.append((item, resolve_monthly_series(item, items)))

    scores: list = [None] * MONTHS_PER_YEAR
    for m in range(min(limit_month, MONTHS_PER_YEAR - 1) + 1):
        weighted_sum = 0.0
        weight_total = 0.0
        for item, (goals, progress) in series:
            p = value_at(progress, m)
            g = value_at(goals, m)
            if p == 0 and g == 0:
                continue
            pct = compliance_percentage(p, g, item.lower_is_better)
            weight = _weight(item)
            weighted_sum += _capped(pct) * weight
            weight_total += weight
        if weight_total > 0:
            scores[m] = round(weighted_sum / weight_total, 1)
    return scores


def trend_limit(year: int, now: date, mode: CalculationMode = CalculationMode.REAL_TIME) -> int:
    """Last month index shown in a dashboard's trend."""
    if year < now.year:
        return MONTHS_PER_YEAR - 1
    if year > now.year:
        return -1
    current_month = now.month - 1
    return current_month if mode is CalculationMode.REAL_TIME else current_month - 1


def score_dashboard(
    dashboard: Dashboard,
    default_thresholds: Optional[ComplianceThresholds],
    year: int,
    mode: CalculationMode = CalculationMode.REAL_TIME,
    *,
    now: date,
) -> DashboardScoreCard:
    """Score card of one dashboard: score, status, trend and per-indicator results."""
    thresholds = dashboard.thresholds or default_thresholds or DEFAULT_THRESHOLDS
    results: list[tuple[Indicator, ComplianceResult]] = [
        (item, compute_compliance(item, thresholds, year, mode, now=now, context=dashboard.items))
        for item in dashboard.items
    ]
    score = weighted_score(dashboard.items, thresholds, year, mode, now=now)
    any_active = any(result.is_active for _, result in results)

    card = DashboardScoreCard(
        dashboard_id=str(dashboard.id),
        title=dashboard.title,
        score=score,
        status=status_for_percentage(score, thresholds, is_active=any_active),
        monthly_scores=monthly_scores(
            dashboard.items, thresholds, year, trend_limit(year, now, mode), now=now,
        ),
        indicators=results,
        capture_pct=capture_pct(dashboard, now),
    )
    logger.debug("Dashboard %s (%s): score %.1f, %d/%d active",
                 card.dashboard_id, card.title, card.score,
                 card.active_indicators, len(results))
    return card
