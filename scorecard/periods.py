"""
periods.py — Weekly-to-monthly period normalisation.

Weekly indicators store up to 53 values per year. The week grid starts on the
configured week-start day on or before 1 January; each day of a week carries
1/7 of the week's value into the month it falls in (days spilling into the
neighbouring years are kept inside January / December).

    accumulative indicators: month value = sum of the day shares
    average indicators:      month value = day-weighted mean

For the current year only closed weeks count: the last week index used is
``week_number(now) - 2``. Future years yield no values at all.
"""

import logging
import math
from datetime import date, timedelta
from typing import Optional

import numpy as np
import pandas as pd

from .models import MONTHS_PER_YEAR, WEEKS_PER_YEAR, Indicator

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7


def _js_weekday(day: date) -> int:
    """Weekday with Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % DAYS_PER_WEEK


def week_number(moment: date, start_day: int = 1) -> int:
    """Week of the year for ``moment``.

    With ``start_day=1`` (Monday) this is the ISO-8601 week number; with
    ``start_day=0`` weeks run Sunday to Saturday and are numbered by the year
    of their Wednesday.

    Args:
        moment: Date (or datetime) to evaluate.
        start_day: 0 for Sunday, 1 for Monday.

    Returns:
        1-based week number.
    """
    day = date(moment.year, moment.month, moment.day)
    weekday = _js_weekday(day)
    if start_day == 1:
        anchor = day + timedelta(days=4 - (weekday or 7))
    else:
        anchor = day + timedelta(days=3 - weekday)
    year_start = date(anchor.year, 1, 1)
    return math.ceil(((anchor - year_start).days + 1) / DAYS_PER_WEEK)


def closed_week_cutoff(now: date, start_day: int = 1) -> int:
    """Last 0-based week index treated as closed in the current year."""
    return week_number(now, start_day) - 2


def first_week_start(year: int, start_day: int = 1) -> date:
    """First day of week 0: the week-start day on or before 1 January."""
    jan_first = date(year, 1, 1)
    weekday = _js_weekday(jan_first)
    diff = (weekday + 7 if weekday < start_day else weekday) - start_day
    return jan_first - timedelta(days=diff)


def week_month_frame(year: int, start_day: int = 1) -> pd.DataFrame:
    """One row per day of the 53-week grid with its week index and month.

    Returns:
        DataFrame with columns: week (0-52), month (0-11).
    """
    days = pd.date_range(
        start=pd.Timestamp(first_week_start(year, start_day)),
        periods=WEEKS_PER_YEAR * DAYS_PER_WEEK,
        freq="D",
    )
    frame = pd.DataFrame({
        "week": np.arange(len(days)) // DAYS_PER_WEEK,
        "month": np.asarray(days.month) - 1,
        "year": np.asarray(days.year),
    })
    frame.loc[frame["year"] < year, "month"] = 0
    frame.loc[frame["year"] > year, "month"] = MONTHS_PER_YEAR - 1
    return frame[["week", "month"]]


def aggregate_weekly_to_monthly(
    weekly_values: list,
    year: int,
    start_day: int = 1,
    max_week: Optional[int] = None,
    mode: str = "average",
) -> list:
    """Spread weekly values over the months their days fall in.

    Args:
        weekly_values: Values indexed by week (None = not captured).
        year: Target year.
        start_day: 0 for Sunday, 1 for Monday.
        max_week: Last week index to include (None = all).
        mode: 'sum' for accumulative indicators, 'average' otherwise.

    Returns:
        12 monthly values; None for months no captured week touches.
    """
    frame = week_month_frame(year, start_day)
    values = pd.to_numeric(pd.Series(list(weekly_values), dtype="object"), errors="coerce")
    values = values.replace([np.inf, -np.inf], np.nan)
    frame = frame.assign(value=frame["week"].map(values))
    if max_week is not None:
        frame = frame[frame["week"] <= max_week]
    frame = frame.dropna(subset=["value"])

    monthly: list = [None] * MONTHS_PER_YEAR
    if frame.empty:
        return monthly

    grouped = frame.groupby("month")["value"].agg(["sum", "count"])
    for month, row in grouped.iterrows():
        if mode == "sum":
            monthly[int(month)] = float(row["sum"]) / DAYS_PER_WEEK
        else:
            monthly[int(month)] = float(row["sum"]) / float(row["count"])
    return monthly


def normalize_weekly(indicator: Indicator, year: int, now: date) -> tuple[list, list]:
    """Monthly (goals, progress) for a weekly indicator.

    Args:
        indicator: Indicator with ``frequency == weekly``.
        year: Target year.
        now: Reference moment for the open-week cutoff.

    Returns:
        Tuple of two 12-slot lists: (monthly_goals, monthly_progress).
    """
    if year > now.year:
        return [None] * MONTHS_PER_YEAR, [None] * MONTHS_PER_YEAR

    start_day = indicator.week_start.start_day
    max_week = closed_week_cutoff(now, start_day) if year == now.year else None
    mode = "sum" if indicator.is_accumulative else "average"

    goals = aggregate_weekly_to_monthly(indicator.weekly_goals or [], year, start_day, max_week, mode)
    progress = aggregate_weekly_to_monthly(indicator.weekly_progress or [], year, start_day, max_week, mode)
    logger.debug("Weekly indicator %r normalised for %d (max week %s)",
                 indicator.name, year, max_week)
    return goals, progress
