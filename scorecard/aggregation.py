"""
aggregation.py — Synthetic consolidated dashboards.

Two layers:

    calculate_aggregate_dashboard   merges the indicators of a set of boards
                                    into one item list (one item per distinct
                                    indicator name)
    AggregationEngine               partitions relabelled boards by group and
                                    builds the per-group and global aggregates

Merge rules per indicator name (trimmed, upper-cased):

    accumulative  month-by-month sum; a month stays None when no member board
                  has a value for it
    average       weighted mean of the boards that have a value, rounded to
                  ``decimal_precision``; board weights come from the
                  configured strategy (equal / manual / indicator)

Weekly arrays (53 slots) are merged the same way.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional, Sequence

from .config import AggregationSettings, EngineSettings
from .formulas import resolve_monthly_series
from .groups import GroupNormalizer, display_label, official_groups
from .hierarchy import HierarchyResolver
from .models import (
    MONTHS_PER_YEAR,
    NO_DATA_ID,
    WEEKS_PER_YEAR,
    AggregateId,
    ComplianceThresholds,
    Dashboard,
    GlobalRole,
    Indicator,
    IndicatorType,
    User,
    coerce_optional,
)

logger = logging.getLogger(__name__)

EMPTY_AGGREGATE_THRESHOLDS = ComplianceThresholds(on_track=95.0, at_risk=85.0)
FIRST_VIRTUAL_ID = -100
GROUP_ORDER = -1
GLOBAL_ORDER = -100
DRIVER_FALLBACK_WEIGHT = 0.1


# ---------------------------------------------------------------------------
# Board weights
# ---------------------------------------------------------------------------

def last_valid_value(values: Optional[list], current_month: int) -> float:
    """Driver value: the current month's, else the latest earlier one, else any later one."""
    if not values:
        return 0.0
    numbers = [coerce_optional(v) for v in values]
    if 0 <= current_month < len(numbers) and numbers[current_month]:
        return numbers[current_month]
    for i in range(min(current_month, len(numbers)) - 1, -1, -1):
        if numbers[i]:
            return numbers[i]
    return next((v for v in numbers if v), 0.0)


def dashboard_weights(
    dashboards: Sequence[Dashboard],
    settings: AggregationSettings,
    now: date,
) -> dict[str, float]:
    """Weight of each member board in non-accumulative merges, keyed by id."""
    driver = (settings.indicator_driver or "").strip().upper()
    weights: dict[str, float] = {}
    for board in dashboards:
        weight = 1.0
        if settings.strategy == "manual":
            weight = board.dashboard_weight or settings.custom_weights.get(str(board.id), 1.0)
        elif settings.strategy == "indicator" and driver:
            item = next((it for it in board.items if it.name.strip().upper() == driver), None)
            value = last_valid_value(item.monthly_progress if item else None, now.month - 1)
            weight = value or DRIVER_FALLBACK_WEIGHT
        weights[str(board.id)] = weight
    return weights


# ---------------------------------------------------------------------------
# Merge primitive
# ---------------------------------------------------------------------------

def _sum_merge(arrays: Sequence[Optional[list]], size: int) -> list:
    merged: list = [None] * size
    for values in arrays:
        for i, raw in enumerate((values or [])[:size]):
            v = coerce_optional(raw)
            if v is not None:
                merged[i] = (merged[i] or 0.0) + v
    return merged


def _weighted_merge(arrays: Sequence[tuple[Optional[list], float]], size: int, precision: int) -> list:
    merged: list = [None] * size
    for i in range(size):
        total = weight_sum = 0.0
        has_data = False
        for values, weight in arrays:
            v = coerce_optional(values[i]) if values and i < len(values) else None
            if v is None:
                continue
            total += v * weight
            weight_sum += weight
            has_data = True
        if has_data:
            merged[i] = round(total / weight_sum, precision) if weight_sum > 0 else 0.0
    return merged


def _merge_item(
    name: str,
    sources: list[tuple[Dashboard, Indicator]],
    weights: dict[str, float],
    precision: int,
    virtual_id: int,
) -> Indicator:
    base = sources[0][1]
    series = [resolve_monthly_series(item, board.items) for board, item in sources]
    has_weekly_goals = base.weekly_goals is not None
    has_weekly_progress = base.weekly_progress is not None

    if base.is_accumulative:
        goals = _sum_merge([g for g, _ in series], MONTHS_PER_YEAR)
        progress = _sum_merge([p for _, p in series], MONTHS_PER_YEAR)
        weekly_goals = (_sum_merge([it.weekly_goals for _, it in sources], WEEKS_PER_YEAR)
                        if has_weekly_goals else None)
        weekly_progress = (_sum_merge([it.weekly_progress for _, it in sources], WEEKS_PER_YEAR)
                           if has_weekly_progress else None)
    else:
        board_weights = [weights.get(str(board.id), 0.0) for board, _ in sources]
        goals = _weighted_merge(list(zip([g for g, _ in series], board_weights)),
                                MONTHS_PER_YEAR, precision)
        progress = _weighted_merge(list(zip([p for _, p in series], board_weights)),
                                   MONTHS_PER_YEAR, precision)
        weekly_goals = (_weighted_merge(list(zip([it.weekly_goals for _, it in sources], board_weights)),
                                        WEEKS_PER_YEAR, precision)
                        if has_weekly_goals else None)
        weekly_progress = (_weighted_merge(list(zip([it.weekly_progress for _, it in sources], board_weights)),
                                           WEEKS_PER_YEAR, precision)
                           if has_weekly_progress else None)

    return replace(
        base,
        id=virtual_id,
        name=name,
        monthly_goals=goals,
        monthly_progress=progress,
        monthly_notes=[""] * MONTHS_PER_YEAR,
        weekly_goals=weekly_goals,
        weekly_progress=weekly_progress,
        indicator_type=IndicatorType.SIMPLE,
        component_ids=[],
        formula=None,
    )


def calculate_aggregate_dashboard(
    dashboards: Sequence[Dashboard],
    settings: Optional[AggregationSettings] = None,
    *,
    now: date,
) -> Dashboard:
    """Merge a set of boards into one synthetic dashboard.

    Items sharing a name (trimmed, case-insensitive) across boards become one
    item, in order of first appearance. An indicator that only one board of a
    multi-board set carries is titled ``"<name> (<board title>)"``.
    Compound and formula indicators are merged on their computed values and
    come out as simple indicators.

    Args:
        dashboards: Member boards.
        settings: Weighting strategy and rounding (defaults when None).
        now: Reference moment for the indicator-driven strategy.

    Returns:
        Dashboard with ``is_aggregate=True`` and the first board's thresholds.
        An empty input yields an item-less dashboard with id -1.
    """
    settings = settings or AggregationSettings()
    if not dashboards:
        return Dashboard(
            id=NO_DATA_ID,
            title="Consolidated Dashboard",
            subtitle="Aggregated view",
            items=[],
            thresholds=EMPTY_AGGREGATE_THRESHOLDS,
            is_aggregate=True,
        )

    weights = dashboard_weights(dashboards, settings, now)

    by_name: dict[str, list[tuple[Dashboard, Indicator]]] = {}
    for board in dashboards:
        for item in board.items:
            if not item.name:
                continue
            by_name.setdefault(item.name.strip().upper(), []).append((board, item))

    items = []
    for offset, sources in enumerate(by_name.values()):
        base_name = sources[0][1].name
        if len(sources) == 1 and len(dashboards) > 1:
            name = f"{base_name} ({sources[0][0].title})"
        else:
            name = base_name
        items.append(_merge_item(name, sources, weights,
                                 settings.decimal_precision, FIRST_VIRTUAL_ID - offset))

    logger.debug("Merged %d boards into %d indicators", len(dashboards), len(items))
    return Dashboard(
        id=NO_DATA_ID,
        title="Consolidated Dashboard",
        subtitle=f"Consolidation of {len(dashboards)} dashboards",
        items=items,
        thresholds=dashboards[0].thresholds,
        is_aggregate=True,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AggregationOutput:
    """Result of one aggregation pass."""
    global_aggregate: Optional[Dashboard]
    group_aggregates: list
    dashboards: list            # relabelled real boards, sorted

    @property
    def all_dashboards(self) -> list:
        """Global aggregate first, then group aggregates, then real boards."""
        head = [self.global_aggregate] if self.global_aggregate is not None else []
        return head + self.group_aggregates + self.dashboards


class AggregationEngine:
    """Builds the consolidated view of a snapshot for one viewer.

    Args:
        users: All users of the snapshot.
        settings: Engine settings (labels, aggregation strategy, prefixes).
        year: Target year.
        now: Reference moment, captured once per pass.
        viewer: Acting user; None behaves as an administrator.
        client_id: Selected client, or None for all.
    """

    def __init__(
        self,
        users: Sequence[User],
        settings: Optional[EngineSettings] = None,
        *,
        year: int,
        now: date,
        viewer: Optional[User] = None,
        client_id: Optional[str] = None,
    ) -> None:
        self.users = sorted(users, key=lambda u: u.user_id)
        self.settings = settings or EngineSettings()
        self.year = year
        self.now = now
        self.viewer = viewer
        self.client_id = client_id
        self.normalizer = GroupNormalizer(self.settings.strip_prefixes)

    @property
    def viewer_is_admin(self) -> bool:
        return self.viewer is None or self.viewer.is_admin

    @property
    def viewer_is_super_director(self) -> bool:
        return self.viewer is not None and not self.viewer.is_admin and self.viewer.is_super_director

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _aggregate_key(self, label: str) -> str:
        return f"agg-{self.normalizer.normalize(label)}-{self.year}"

    def _group_title(self, label: str) -> str:
        if self.viewer is not None and self.viewer.is_super_director:
            return label
        key = self.normalizer.normalize(label)
        director = next(
            (u for u in self.users
             if u.global_role in (GlobalRole.DIRECTOR, GlobalRole.ADMIN)
             and u.belongs_to(self.client_id)
             and key in (self.normalizer.normalize(u.director_title), self.normalizer.normalize(u.group))
             and (u.director_title or u.group)),
            None,
        )
        if director is not None and director.director_title:
            return display_label(director.director_title)
        return label

    def _is_hierarchy_root(self, key: str) -> bool:
        viewer_id = self.viewer.user_id if self.viewer is not None else None
        for user in self.users:
            is_viewer = user.user_id == viewer_id
            if not (user.is_director or user.is_admin or is_viewer):
                continue
            if not user.director_title or self.normalizer.normalize(user.director_title) != key:
                continue
            if user.is_super_director or is_viewer:
                return True
        return False

    def _navigation_parent(self, key: str) -> Optional[str]:
        viewer = self.viewer
        if viewer is None or not viewer.is_super_director:
            return None
        if any(self.normalizer.normalize(sg) == key for sg in viewer.sub_groups):
            return display_label(viewer.director_title) or None
        return None

    def groups_to_aggregate(self, groups: Sequence[str]) -> list[str]:
        """A super-director's sub-groups, otherwise the official groups."""
        if self.viewer is not None and self.viewer.is_super_director:
            return list(self.viewer.sub_groups)
        return list(groups)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def group_aggregates(self, dashboards: Sequence[Dashboard], groups: Sequence[str]) -> list[Dashboard]:
        """One aggregate per group that has at least one member board."""
        aggregates = []
        seen: set[str] = set()
        for label in self.groups_to_aggregate(groups):
            key = self.normalizer.normalize(label)
            if key in seen:
                continue
            seen.add(key)
            members = [d for d in dashboards if self.normalizer.normalize(d.group) == key]
            if not members:
                continue
            merged = calculate_aggregate_dashboard(members, self.settings.aggregation, now=self.now)
            aggregates.append(replace(
                merged,
                id=AggregateId(self._aggregate_key(label)),
                title=self._group_title(label),
                group=label,
                navigation_parent=self._navigation_parent(key),
                client_id=self.client_id,
                year=self.year,
                order_number=GROUP_ORDER,
                is_hierarchy_root=self._is_hierarchy_root(key),
                is_aggregate=True,
            ))
            logger.debug("Group aggregate %s: %d boards", label, len(members))
        return aggregates

    def should_build_global(self) -> bool:
        """Admins with a client selected, and super-directors, get a global total."""
        if self.viewer_is_admin:
            return bool(self.client_id)
        return self.viewer_is_super_director

    def global_aggregate(self, dashboards: Sequence[Dashboard]) -> Optional[Dashboard]:
        """Consolidation over every board relevant to the viewer, or None."""
        if not self.should_build_global():
            return None

        labels = self.settings.labels
        if self.viewer_is_admin:
            relevant = list(dashboards)
        else:
            keys = {self.normalizer.normalize(sg) for sg in self.viewer.sub_groups}
            keys.add(self.normalizer.normalize(self.viewer.director_title))
            relevant = [d for d in dashboards if self.normalizer.normalize(d.group) in keys]
        if not relevant:
            return None

        director_title = display_label(self.viewer.director_title) if self.viewer is not None else ""
        merged = calculate_aggregate_dashboard(relevant, self.settings.aggregation, now=self.now)
        return replace(
            merged,
            id=AggregateId(f"agg-global-total-{self.year}"),
            title=director_title or labels.global_title,
            group=labels.all_groups if self.viewer_is_admin else (director_title or labels.global_title),
            client_id=self.client_id,
            year=self.year,
            order_number=GLOBAL_ORDER,
            is_hierarchy_root=True,
            is_aggregate=True,
        )

    def build(self, dashboards: Sequence[Dashboard]) -> AggregationOutput:
        """Relabel the real boards and build every aggregate.

        Args:
            dashboards: Real boards of the pass (already filtered by client/year).

        Returns:
            AggregationOutput.
        """
        groups = official_groups(
            self.users, self.normalizer, self.client_id, self.viewer, dashboards,
        )
        resolver = HierarchyResolver(
            self.users, groups, self.normalizer, self.viewer, self.client_id,
            self.settings.labels.fallback_group,
        )
        relabelled = sorted(resolver.relabel(dashboards), key=lambda d: d.sort_key)

        output = AggregationOutput(
            global_aggregate=self.global_aggregate(relabelled),
            group_aggregates=self.group_aggregates(relabelled, groups),
            dashboards=relabelled,
        )
        logger.debug(
            "Aggregation for %s: %d groups, global=%s",
            self.viewer.user_id if self.viewer is not None else "system",
            len(output.group_aggregates), output.global_aggregate is not None,
        )
        return output
