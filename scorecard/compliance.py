"""
compliance.py — Indicator compliance engine.

Computes, for one indicator and a target year, the period's progress vs
target, a compliance percentage and a traffic-light status:

    OnTrack / AtRisk / OffTrack  — closed period, compared against thresholds
    InProgress                   — the evaluated month is still open
    Neutral                      — no goal or progress captured for the period

Temporal clamping always uses the caller-supplied ``now``:

    realTime    latest month with data, capped at the current month
    definitive  closed months only (current month - 1 for monthly indicators,
                the current month for weekly ones, whose open weeks were
                already dropped during normalisation)

Also provides capture auditing and data-quality warnings.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from .formulas import resolve_monthly_series
from .models import (
    MONTHS_PER_YEAR,
    CalculationMode,
    ComplianceStatus,
    ComplianceThresholds,
    Dashboard,
    Indicator,
    coerce_optional,
    value_at,
)
from .periods import normalize_weekly

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = ComplianceThresholds(on_track=95.0, at_risk=80.0)

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


# ---------------------------------------------------------------------------
# Data structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComplianceResult:
    """Compliance of one indicator for the evaluated period."""
    current_progress: float
    current_target: float
    overall_percentage: float
    status: ComplianceStatus
    is_active: bool
    evaluated_month: int        # -1 when no month counts (future year)
    is_closed_period: bool


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def compliance_percentage(actual: float, target: float, lower_is_better: bool) -> float:
    """Compliance percentage of ``actual`` against ``target``.

    Args:
        actual: Achieved value.
        target: Goal value.
        lower_is_better: True for minimize indicators.

    Returns:
        Percentage (100 = on target). ``(0, 0)`` is "no data" and returns 0.
    """
    a = coerce_optional(actual) or 0.0
    t = coerce_optional(target) or 0.0

    if t == 0 and a == 0:
        return 0.0
    if t == 0:
        if lower_is_better:
            return 100.0 if a == 0 else 0.0
        return 100.0 if a > 0 else 0.0
    if not lower_is_better:
        return a / t * 100
    if a == 0:
        return 100.0
    return t / a * 100


def status_for_percentage(
    percentage: float,
    thresholds: Optional[ComplianceThresholds] = None,
    is_active: bool = True,
    is_closed_period: bool = True,
) -> ComplianceStatus:
    """Traffic-light status for a percentage.

    Thresholds are compared literally (``>= on_track`` first), so an inverted
    pair is honoured as given. Missing thresholds default to 95 / 80.
    """
    if not is_active:
        return ComplianceStatus.NEUTRAL
    if not is_closed_period:
        return ComplianceStatus.IN_PROGRESS

    thresholds = thresholds or DEFAULT_THRESHOLDS
    if not math.isfinite(percentage):
        return ComplianceStatus.OFF_TRACK
    if percentage >= thresholds.on_track:
        return ComplianceStatus.ON_TRACK
    if percentage >= thresholds.at_risk:
        return ComplianceStatus.AT_RISK
    return ComplianceStatus.OFF_TRACK


def last_index_with_data(progress: Sequence, goals: Sequence) -> int:
    """Last month index with a non-zero goal or progress, -1 if none."""
    length = max(len(progress or []), len(goals or []))
    for i in range(length - 1, -1, -1):
        if value_at(progress, i) != 0 or value_at(goals, i) != 0:
            return i
    return -1


def definitive_limit(year: int, now: date, weekly: bool = False) -> int:
    """Last month index that counts as closed for ``year``."""
    if year < now.year:
        return MONTHS_PER_YEAR - 1
    if year > now.year:
        return -1
    current_month = now.month - 1
    return current_month if weekly else current_month - 1


def evaluated_month(
    progress: Sequence,
    goals: Sequence,
    year: int,
    now: date,
    mode: CalculationMode,
    weekly: bool = False,
) -> int:
    """Month index up to which values are accumulated, -1 when none count."""
    if mode is CalculationMode.DEFINITIVE:
        return definitive_limit(year, now, weekly)
    if year < now.year:
        return MONTHS_PER_YEAR - 1
    if year > now.year:
        return -1

    current_month = now.month - 1
    last = last_index_with_data(progress, goals)
    idx = min(max(last, 0), current_month)
    # An open month with a goal but no progress yet would only drag the total down
    if idx == current_month and value_at(progress, idx) == 0 and value_at(goals, idx) != 0:
        idx = max(0, idx - 1)
    return idx


def period_series(
    indicator: Indicator,
    year: int,
    now: date,
    context: Optional[Sequence[Indicator]] = None,
) -> tuple[list, list]:
    """Monthly (goals, progress) to evaluate, after weekly normalisation."""
    if indicator.is_weekly:
        return normalize_weekly(indicator, year, now)
    return resolve_monthly_series(indicator, context)


def _accumulate(progress: Sequence, goals: Sequence, idx: int, accumulative: bool) -> tuple[float, float]:
    if idx < 0:
        return 0.0, 0.0
    if accumulative:
        total_progress = sum(value_at(progress, i) for i in range(idx + 1))
        total_target = sum(value_at(goals, i) for i in range(idx + 1))
        return total_progress, total_target

    sum_progress = sum_target = 0.0
    count = 0
    for i in range(idx + 1):
        p = value_at(progress, i)
        g = value_at(goals, i)
        if p != 0 or g != 0:
            sum_progress += p
            sum_target += g
            count += 1
    if count == 0:
        return 0.0, 0.0
    return sum_progress / count, sum_target / count


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def compute_compliance(
    indicator: Indicator,
    thresholds: Optional[ComplianceThresholds],
    year: int,
    mode: CalculationMode = CalculationMode.REAL_TIME,
    *,
    now: date,
    context: Optional[Sequence[Indicator]] = None,
) -> ComplianceResult:
    """Compliance of one indicator for ``year`` as seen at ``now``.

    Args:
        indicator: The KPI to evaluate.
        thresholds: Dashboard/global thresholds; the indicator's own override them.
        year: Target year.
        mode: realTime or definitive clamping.
        now: Reference moment for every temporal cutoff.
        context: Sibling indicators, used by compound/formula indicators.

    Returns:
        ComplianceResult.
    """
    goals, progress = period_series(indicator, year, now, context)
    idx = evaluated_month(progress, goals, year, now, mode, indicator.is_weekly)
    current_progress, current_target = _accumulate(progress, goals, idx, indicator.is_accumulative)

    percentage = compliance_percentage(current_progress, current_target, indicator.lower_is_better)
    is_active = current_target != 0 or current_progress != 0

    if year < now.year:
        is_closed = True
    elif year > now.year:
        is_closed = False
    else:
        is_closed = idx < now.month - 1 or indicator.is_weekly

    effective = indicator.thresholds or thresholds or DEFAULT_THRESHOLDS
    status = status_for_percentage(percentage, effective, is_active, is_closed)

    logger.debug(
        "%s: month=%d progress=%.4f target=%.4f pct=%.2f status=%s",
        indicator.name, idx, current_progress, current_target, percentage, status.value,
    )
    return ComplianceResult(
        current_progress=current_progress,
        current_target=current_target,
        overall_percentage=percentage,
        status=status,
        is_active=is_active,
        evaluated_month=idx,
        is_closed_period=is_closed,
    )


# ---------------------------------------------------------------------------
# Capture auditing and data-quality warnings
# ---------------------------------------------------------------------------

def capture_pct(dashboard: Dashboard, now: date) -> int:
    """Share (0-100) of indicators with real progress in the last closed month.

    A missing value or the placeholder pair (0, 0) does not count as captured.
    ``target_indicator_count`` overrides the denominator when it is positive.
    """
    items = dashboard.items
    if not items:
        return 100

    year = dashboard.year or now.year
    if year > now.year:
        return 100
    is_past_year = year < now.year
    if not is_past_year and now.month == 1:
        return 100

    month = MONTHS_PER_YEAR - 1 if is_past_year else now.month - 2
    captured = 0
    for item in items:
        raw = item.monthly_progress[month] if month < len(item.monthly_progress) else None
        progress = coerce_optional(raw)
        if progress is None:
            continue
        if progress == 0 and value_at(item.monthly_goals, month) == 0:
            continue
        captured += 1

    count = dashboard.target_indicator_count
    total = count if count and count > 0 else len(items)
    return max(0, min(100, round(captured / total * 100)))


def missing_months_warning(progress: Sequence, goals: Sequence) -> Optional[str]:
    """Warn about months with a goal but no progress, or progress but no goal."""
    length = min(max(len(progress or []), len(goals or [])), MONTHS_PER_YEAR)
    missing = [
        MONTH_ABBREVIATIONS[i]
        for i in range(length)
        if (value_at(progress, i) != 0) != (value_at(goals, i) != 0)
    ]
    if not missing:
        return None
    return (
        "Some months have incomplete data (goal without progress or "
        f"progress without goal): {', '.join(missing)}."
    )


def overdue_warning(progress: Sequence, goals: Sequence, year: int, now: date) -> Optional[str]:
    """Warn about closed months of ``year`` with nothing captured at all."""
    if year > now.year:
        return None
    closed = MONTHS_PER_YEAR if year < now.year else now.month - 1
    missing = [
        MONTH_ABBREVIATIONS[i]
        for i in range(closed)
        if value_at(progress, i) == 0 and value_at(goals, i) == 0
    ]
    if not missing:
        return None
    return f"Overdue period: no data captured for {', '.join(missing)}."
