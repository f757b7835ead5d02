"""
pipeline.py — One computation pass over a snapshot.

    load_snapshot  JSON file -> Snapshot (dashboards + users)
    recompute      Snapshot -> ScorecardResult

A pass is a pure function of (snapshot, settings, year, now, mode, viewer,
client): it filters the snapshot to the selected client and year, relabels
every board with its effective group, builds the group and global
aggregates, and scores every dashboard. Inputs are never modified.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from .aggregation import AggregationEngine
from .config import EngineSettings
from .models import (
    CalculationMode,
    Dashboard,
    User,
    dashboard_from_dict,
    dashboard_to_dict,
    user_from_dict,
)
from .scoring import DashboardScoreCard, score_dashboard

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Snapshot:
    """Immutable input of a pass."""
    dashboards: tuple = ()
    users: tuple = ()

    def find_user(self, user_id: Optional[str]) -> Optional[User]:
        if user_id is None:
            return None
        return next((u for u in self.users if u.user_id == str(user_id)), None)


@dataclass
class ScorecardResult:
    """Enriched dashboard list plus the score card of each dashboard."""
    year: int
    now: date
    mode: CalculationMode
    dashboards: list = field(default_factory=list)      # aggregates first
    scores: dict = field(default_factory=dict)          # str(id) -> DashboardScoreCard

    @property
    def aggregates(self) -> list[Dashboard]:
        return [d for d in self.dashboards if d.is_aggregate]

    def score_for(self, dashboard: Dashboard) -> DashboardScoreCard:
        return self.scores[str(dashboard.id)]

    def summary_frame(self) -> pd.DataFrame:
        """One row per dashboard: id, title, group, score, status, capture %.

        Returns:
            DataFrame in output order.
        """
        rows = []
        for d in self.dashboards:
            card = self.score_for(d)
            rows.append({
                "id": str(d.id),
                "title": d.title,
                "group": d.group,
                "aggregate": d.is_aggregate,
                "indicators": len(d.items),
                "active": card.active_indicators,
                "score_pct": card.score,
                "status": card.status.value,
                "capture_pct": card.capture_pct,
            })
        columns = ["id", "title", "group", "aggregate", "indicators",
                   "active", "score_pct", "status", "capture_pct"]
        return pd.DataFrame(rows, columns=columns)


# ---------------------------------------------------------------------------
# Snapshot I/O
# ---------------------------------------------------------------------------

def snapshot_from_dict(raw: dict[str, Any], strict: bool = False) -> Snapshot:
    """Build a Snapshot from ``{"dashboards": [...], "users": [...]}``."""
    return Snapshot(
        dashboards=tuple(dashboard_from_dict(d, strict) for d in raw.get("dashboards") or []),
        users=tuple(user_from_dict(u) for u in raw.get("users") or []),
    )


def load_snapshot(path: str, strict: bool = False) -> Snapshot:
    """Read a JSON snapshot file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ContractViolation: On structural errors when ``strict`` is True.
    """
    snapshot_path = Path(path)
    if not snapshot_path.exists():
        raise FileNotFoundError(f"Snapshot not found at {snapshot_path}. Run --generate-data first.")
    with open(snapshot_path, "r", encoding="utf-8") as fh:
        snapshot = snapshot_from_dict(json.load(fh), strict)
    logger.info("Loaded snapshot %s: %d dashboards, %d users",
                snapshot_path, len(snapshot.dashboards), len(snapshot.users))
    return snapshot


def result_to_dict(result: ScorecardResult) -> dict[str, Any]:
    """JSON-shaped view of a pass for presentation/export collaborators."""
    dashboards = []
    for d in result.dashboards:
        card = result.score_for(d)
        doc = dashboard_to_dict(d)
        doc["score"] = card.score
        doc["status"] = card.status.value
        doc["monthlyScores"] = card.monthly_scores
        doc["capturePct"] = card.capture_pct
        for item_doc, (_, compliance) in zip(doc["items"], card.indicators):
            item_doc["compliance"] = {
                "currentProgress": compliance.current_progress,
                "currentTarget": compliance.current_target,
                "overallPercentage": compliance.overall_percentage,
                "status": compliance.status.value,
                "isActive": compliance.is_active,
            }
        dashboards.append(doc)
    return {
        "year": result.year,
        "now": result.now.isoformat(),
        "mode": result.mode.value,
        "dashboards": dashboards,
    }


def write_result(result: ScorecardResult, path: str) -> Path:
    """Write ``result_to_dict(result)`` as indented JSON."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as fh:
        json.dump(result_to_dict(result), fh, indent=2, ensure_ascii=False)
    logger.info("Written %d dashboards -> %s", len(result.dashboards), out)
    return out


# ---------------------------------------------------------------------------
# Computation pass
# ---------------------------------------------------------------------------

def select_dashboards(
    dashboards: Any,
    year: int,
    client_id: Optional[str] = None,
) -> list[Dashboard]:
    """Real boards of ``year`` (boards without a year count for any year) and client."""
    client = client_id.strip().upper() if client_id else None
    return [
        d for d in dashboards
        if not d.is_aggregate
        and (d.year is None or d.year == year)
        and (client is None or (d.client_id or "").strip().upper() == client)
    ]


def recompute(
    snapshot: Snapshot,
    settings: Optional[EngineSettings] = None,
    *,
    year: int,
    now: date,
    mode: Optional[CalculationMode] = None,
    viewer: Optional[User] = None,
    client_id: Optional[str] = None,
) -> ScorecardResult:
    """Run one computation pass.

    Args:
        snapshot: Dashboards and users.
        settings: Engine settings (defaults when None).
        year: Target year.
        now: Reference moment for every temporal cutoff.
        mode: Overrides ``settings.calculation_mode`` when given.
        viewer: Acting user; None behaves as an administrator.
        client_id: Restrict the pass to one client.

    Returns:
        ScorecardResult with aggregates first, then real boards.
    """
    settings = settings or EngineSettings()
    mode = mode or settings.calculation_mode

    boards = select_dashboards(snapshot.dashboards, year, client_id)
    engine = AggregationEngine(
        snapshot.users, settings, year=year, now=now, viewer=viewer, client_id=client_id,
    )
    output = engine.build(boards)

    result = ScorecardResult(year=year, now=now, mode=mode, dashboards=output.all_dashboards)
    for dashboard in result.dashboards:
        result.scores[str(dashboard.id)] = score_dashboard(
            dashboard, settings.thresholds, year, mode, now=now,
        )

    logger.info(
        "Recomputed %d boards + %d aggregates for %d (%s, now=%s, viewer=%s, client=%s)",
        len(output.dashboards), len(result.dashboards) - len(output.dashboards),
        year, mode.value, now.isoformat(),
        viewer.user_id if viewer is not None else "system", client_id or "all",
    )
    return result
