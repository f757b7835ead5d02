"""
models.py — Scorecard data model and snapshot ingestion.

Every structure the engine works on is defined here:

    Indicator            — one KPI of a dashboard (monthly or weekly)
    ComplianceThresholds — OnTrack / AtRisk percentage pair
    Dashboard            — one organisational unit's indicators for a year
    User                 — director-hierarchy input (roles, titles, grants)
    RealId / AggregateId — the dashboard id sum type, resolved once at ingestion

Snapshots arrive as JSON-shaped dicts (camelCase keys, as the document store
writes them). The ``*_from_dict`` functions coerce malformed numbers and
unknown enum strings into safe values so the calculators never see them.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = 12
WEEKS_PER_YEAR = 53


class ContractViolation(ValueError):
    """Structural input error (e.g. a month array that is not 12 long)."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class GlobalRole(str, Enum):
    ADMIN = "Admin"
    DIRECTOR = "Director"
    MEMBER = "Member"


class DashboardRole(str, Enum):
    EDITOR = "Editor"
    VIEWER = "Viewer"


class IndicatorKind(str, Enum):
    ACCUMULATIVE = "accumulative"
    AVERAGE = "average"


class GoalType(str, Enum):
    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"


class Frequency(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class WeekStart(str, Enum):
    SUN = "Sun"
    MON = "Mon"

    @property
    def start_day(self) -> int:
        """0 for Sunday, 1 for Monday."""
        return 0 if self is WeekStart.SUN else 1


class IndicatorType(str, Enum):
    SIMPLE = "simple"
    COMPOUND = "compound"
    FORMULA = "formula"


class CalculationMode(str, Enum):
    REAL_TIME = "realTime"
    DEFINITIVE = "definitive"


class ComplianceStatus(str, Enum):
    ON_TRACK = "OnTrack"
    AT_RISK = "AtRisk"
    OFF_TRACK = "OffTrack"
    NEUTRAL = "Neutral"
    IN_PROGRESS = "InProgress"


def parse_enum(enum_cls, value: Any, default):
    """Match ``value`` against an enum's values or names, case-insensitively."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    for member in enum_cls:
        if text in (member.value.lower(), member.name.lower()):
            return member
    logger.debug("Unknown %s value %r, using %s", enum_cls.__name__, value, default.value)
    return default


# ---------------------------------------------------------------------------
# Dashboard id sum type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RealId:
    """Id of a persisted dashboard."""
    value: int

    is_aggregate = False

    def __str__(self) -> str:
        return str(self.value)

    @property
    def sort_key(self) -> tuple:
        return (0, self.value, "")


@dataclass(frozen=True)
class AggregateId:
    """Id of a synthetic dashboard, always prefixed ``agg-``."""
    key: str

    is_aggregate = True

    def __str__(self) -> str:
        return self.key

    @property
    def sort_key(self) -> tuple:
        return (1, 0, self.key)


DashboardId = Union[RealId, AggregateId]

# Legacy "no data" sentinel, also the id of an empty consolidation
NO_DATA_ID = RealId(-1)
AGGREGATE_PREFIX = "agg-"


def parse_dashboard_id(raw: Any) -> DashboardId:
    """Resolve a raw id (int, numeric string or ``agg-...``) into the sum type.

    Raises:
        ContractViolation: If the id is neither numeric nor an aggregate key.
    """
    if isinstance(raw, (RealId, AggregateId)):
        return raw
    if isinstance(raw, bool) or raw is None:
        raise ContractViolation(f"Invalid dashboard id: {raw!r}")
    if isinstance(raw, int):
        return RealId(raw)
    if isinstance(raw, float) and raw.is_integer():
        return RealId(int(raw))
    text = str(raw).strip()
    if text.startswith(AGGREGATE_PREFIX):
        return AggregateId(text)
    try:
        return RealId(int(text))
    except ValueError:
        raise ContractViolation(f"Invalid dashboard id: {raw!r}") from None


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComplianceThresholds:
    """Percentages at or above which a KPI is OnTrack / AtRisk."""
    on_track: float = 95.0
    at_risk: float = 80.0


@dataclass(frozen=True)
class Indicator:
    """One KPI tracked monthly (12 slots) or weekly (up to 53 slots)."""
    id: Union[int, str]
    name: str
    weight: float = 0.0
    kind: IndicatorKind = IndicatorKind.AVERAGE
    goal_type: GoalType = GoalType.MAXIMIZE
    frequency: Frequency = Frequency.MONTHLY
    week_start: WeekStart = WeekStart.MON
    monthly_goals: list = field(default_factory=lambda: [None] * MONTHS_PER_YEAR)
    monthly_progress: list = field(default_factory=lambda: [None] * MONTHS_PER_YEAR)
    monthly_notes: list = field(default_factory=lambda: [""] * MONTHS_PER_YEAR)
    weekly_goals: Optional[list] = None
    weekly_progress: Optional[list] = None
    thresholds: Optional[ComplianceThresholds] = None
    unit: str = ""
    indicator_type: IndicatorType = IndicatorType.SIMPLE
    component_ids: list = field(default_factory=list)
    formula: Optional[str] = None

    @property
    def lower_is_better(self) -> bool:
        return self.goal_type is GoalType.MINIMIZE

    @property
    def is_accumulative(self) -> bool:
        return self.kind is IndicatorKind.ACCUMULATIVE

    @property
    def is_weekly(self) -> bool:
        return self.frequency is Frequency.WEEKLY


@dataclass(frozen=True)
class Dashboard:
    """A real board, or a synthetic consolidation when ``is_aggregate``."""
    id: DashboardId
    title: str
    items: list = field(default_factory=list)
    group: str = ""
    subtitle: str = ""
    area: Optional[str] = None
    client_id: Optional[str] = None
    year: Optional[int] = None
    order_number: Optional[float] = None
    thresholds: Optional[ComplianceThresholds] = None
    is_aggregate: bool = False
    is_hierarchy_root: bool = False
    navigation_parent: Optional[str] = None
    original_id: Optional[DashboardId] = None
    dashboard_weight: Optional[float] = None
    target_indicator_count: Optional[int] = None

    @property
    def access_keys(self) -> tuple:
        """Keys under which a user's grant for this board may be stored."""
        if self.original_id is None:
            return (str(self.id),)
        return (str(self.id), str(self.original_id))

    @property
    def sort_key(self) -> tuple:
        order = self.order_number if self.order_number is not None else 0
        return (order,) + self.id.sort_key


@dataclass(frozen=True)
class User:
    """A person in the director hierarchy."""
    user_id: str
    name: str = ""
    client_id: Optional[str] = None
    global_role: GlobalRole = GlobalRole.MEMBER
    director_title: Optional[str] = None
    sub_groups: list = field(default_factory=list)
    dashboard_access: dict = field(default_factory=dict)
    group: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.global_role is GlobalRole.ADMIN

    @property
    def is_director(self) -> bool:
        return self.global_role is GlobalRole.DIRECTOR

    @property
    def is_super_director(self) -> bool:
        return bool(self.sub_groups)

    @property
    def client_ids(self) -> list[str]:
        return [c.strip().upper() for c in (self.client_id or "").split(",") if c.strip()]

    def belongs_to(self, client_id: Optional[str]) -> bool:
        if not client_id:
            return True
        return client_id.strip().upper() in self.client_ids

    def has_access(self, dashboard: Dashboard) -> bool:
        return any(key in self.dashboard_access for key in dashboard.access_keys)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> float:
    """Arithmetic view of a stored value: anything unusable becomes 0."""
    number = coerce_optional(value)
    return 0.0 if number is None else number


def coerce_optional(value: Any) -> Optional[float]:
    """Storage view of a value: missing or malformed numbers become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def value_at(values: Optional[list], index: int) -> float:
    """Arithmetic value of slot ``index``; missing slots count as 0."""
    if values is None or not 0 <= index < len(values):
        return 0.0
    return coerce_number(values[index])


def _month_array(raw: Any, label: str, strict: bool) -> list:
    if raw is None:
        return [None] * MONTHS_PER_YEAR
    values = [coerce_optional(v) for v in raw]
    if len(values) != MONTHS_PER_YEAR:
        if strict:
            raise ContractViolation(
                f"{label} has {len(values)} slots, expected {MONTHS_PER_YEAR}"
            )
        logger.warning("%s has %d slots, padding/truncating to %d",
                       label, len(values), MONTHS_PER_YEAR)
        values = (values + [None] * MONTHS_PER_YEAR)[:MONTHS_PER_YEAR]
    return values


def _week_array(raw: Any) -> Optional[list]:
    if raw is None:
        return None
    return [coerce_optional(v) for v in raw][:WEEKS_PER_YEAR]


def _indicator_id(raw: Any) -> Union[int, str]:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    text = str(raw).strip()
    try:
        return int(text)
    except ValueError:
        return text


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

def thresholds_from_dict(raw: Optional[dict]) -> Optional[ComplianceThresholds]:
    """Build thresholds from ``{"onTrack": .., "atRisk": ..}``; None if absent.

    Inverted pairs (atRisk above onTrack) are kept as given.
    """
    if not raw:
        return None
    defaults = ComplianceThresholds()
    on_track = coerce_optional(raw.get("onTrack", raw.get("on_track")))
    at_risk = coerce_optional(raw.get("atRisk", raw.get("at_risk")))
    return ComplianceThresholds(
        on_track=defaults.on_track if on_track is None else on_track,
        at_risk=defaults.at_risk if at_risk is None else at_risk,
    )


def indicator_from_dict(raw: dict, strict: bool = False) -> Indicator:
    """Build an Indicator from its stored document.

    Args:
        raw: Indicator document (camelCase keys).
        strict: Raise ContractViolation on month arrays that are not 12 long
            instead of padding them.

    Returns:
        Indicator instance.
    """
    name = str(raw.get("indicator", raw.get("name", "")) or "").strip()
    label = f"Indicator {raw.get('id')!r} ({name})"

    goal_type = parse_enum(GoalType, raw.get("goalType"), GoalType.MAXIMIZE)
    raw_type = str(raw.get("type") or "").strip().lower()
    # Legacy documents stored the goal direction in ``type``
    if raw_type in ("minimize", "lower", "min"):
        goal_type = GoalType.MINIMIZE

    notes = [str(n) if n is not None else "" for n in (raw.get("monthlyNotes") or [])]
    notes = (notes + [""] * MONTHS_PER_YEAR)[:MONTHS_PER_YEAR]

    weight = coerce_number(raw.get("weight"))

    return Indicator(
        id=_indicator_id(raw.get("id", name)),
        name=name,
        weight=max(weight, 0.0),
        kind=parse_enum(IndicatorKind, raw.get("type"), IndicatorKind.AVERAGE),
        goal_type=goal_type,
        frequency=parse_enum(Frequency, raw.get("frequency"), Frequency.MONTHLY),
        week_start=parse_enum(WeekStart, raw.get("weekStart"), WeekStart.MON),
        monthly_goals=_month_array(raw.get("monthlyGoals"), f"{label} monthlyGoals", strict),
        monthly_progress=_month_array(raw.get("monthlyProgress"), f"{label} monthlyProgress", strict),
        monthly_notes=notes,
        weekly_goals=_week_array(raw.get("weeklyGoals")),
        weekly_progress=_week_array(raw.get("weeklyProgress")),
        thresholds=thresholds_from_dict(raw.get("thresholds")),
        unit=str(raw.get("unit") or ""),
        indicator_type=parse_enum(IndicatorType, raw.get("indicatorType"), IndicatorType.SIMPLE),
        component_ids=list(raw.get("componentIds") or []),
        formula=raw.get("formula") or None,
    )


def dashboard_from_dict(raw: dict, strict: bool = False) -> Dashboard:
    """Build a Dashboard (and its indicators) from its stored document."""
    original = raw.get("originalId")
    year = coerce_optional(raw.get("year"))
    target = coerce_optional(raw.get("targetIndicatorCount"))
    return Dashboard(
        id=parse_dashboard_id(raw.get("id")),
        title=str(raw.get("title") or ""),
        items=[indicator_from_dict(i, strict) for i in (raw.get("items") or []) if i],
        group=str(raw.get("group") or ""),
        subtitle=str(raw.get("subtitle") or ""),
        area=raw.get("area") or None,
        client_id=raw.get("clientId") or None,
        year=int(year) if year is not None else None,
        order_number=coerce_optional(raw.get("orderNumber")),
        thresholds=thresholds_from_dict(raw.get("thresholds")),
        is_aggregate=bool(raw.get("isAggregate", False)),
        is_hierarchy_root=bool(raw.get("isHierarchyRoot", False)),
        navigation_parent=raw.get("navigationParent") or None,
        original_id=parse_dashboard_id(original) if original is not None else None,
        dashboard_weight=coerce_optional(raw.get("dashboardWeight")),
        target_indicator_count=int(target) if target is not None else None,
    )


def user_from_dict(raw: dict) -> User:
    """Build a User from its profile document."""
    access = {
        str(key).strip(): parse_enum(DashboardRole, role, DashboardRole.VIEWER)
        for key, role in (raw.get("dashboardAccess") or {}).items()
        if role
    }
    return User(
        user_id=str(raw.get("id", raw.get("email", ""))),
        name=str(raw.get("name") or ""),
        client_id=raw.get("clientId") or None,
        global_role=parse_enum(GlobalRole, raw.get("globalRole"), GlobalRole.MEMBER),
        director_title=raw.get("directorTitle") or None,
        sub_groups=[str(sg) for sg in (raw.get("subGroups") or []) if sg],
        dashboard_access=access,
        group=raw.get("group") or None,
    )


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _thresholds_to_dict(thresholds: Optional[ComplianceThresholds]) -> Optional[dict]:
    if thresholds is None:
        return None
    return {"onTrack": thresholds.on_track, "atRisk": thresholds.at_risk}


def indicator_to_dict(item: Indicator) -> dict[str, Any]:
    doc = {
        "id": item.id,
        "indicator": item.name,
        "weight": item.weight,
        "type": item.kind.value,
        "goalType": item.goal_type.value,
        "frequency": item.frequency.value,
        "monthlyGoals": list(item.monthly_goals),
        "monthlyProgress": list(item.monthly_progress),
        "monthlyNotes": list(item.monthly_notes),
        "unit": item.unit,
        "indicatorType": item.indicator_type.value,
    }
    if item.is_weekly:
        doc["weekStart"] = item.week_start.value
    if item.weekly_goals is not None:
        doc["weeklyGoals"] = list(item.weekly_goals)
    if item.weekly_progress is not None:
        doc["weeklyProgress"] = list(item.weekly_progress)
    if item.thresholds is not None:
        doc["thresholds"] = _thresholds_to_dict(item.thresholds)
    if item.component_ids:
        doc["componentIds"] = list(item.component_ids)
    if item.formula:
        doc["formula"] = item.formula
    return doc


def dashboard_to_dict(dashboard: Dashboard) -> dict[str, Any]:
    """JSON-shaped view of a dashboard for presentation/export collaborators."""
    doc = {
        "id": dashboard.id.value if isinstance(dashboard.id, RealId) else dashboard.id.key,
        "title": dashboard.title,
        "subtitle": dashboard.subtitle,
        "group": dashboard.group,
        "area": dashboard.area,
        "clientId": dashboard.client_id,
        "year": dashboard.year,
        "orderNumber": dashboard.order_number,
        "thresholds": _thresholds_to_dict(dashboard.thresholds),
        "isAggregate": dashboard.is_aggregate,
        "isHierarchyRoot": dashboard.is_hierarchy_root,
        "navigationParent": dashboard.navigation_parent,
        "items": [indicator_to_dict(i) for i in dashboard.items],
    }
    return doc
