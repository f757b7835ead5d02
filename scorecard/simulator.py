"""
simulator.py — Synthetic snapshot generator.

Builds a demo snapshot that exercises every path of the engine:

    - group labels typed with accent / case / spacing variants
    - a board shared by two directors (leaf-first ownership)
    - a super-director consolidating two sub-groups
    - monthly accumulative, average and minimize indicators
    - one weekly indicator and one formula indicator
    - months left uncaptured after ``now`` (and the odd gap before it)

All randomness comes from a seeded NumPy generator, so the same config and
``now`` always yield the same file.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .models import MONTHS_PER_YEAR, WEEKS_PER_YEAR
from .periods import week_number

logger = logging.getLogger(__name__)

DEFAULT_GROUPS = {
    "Dirección Sur": ["DIRECCION SUR", "  dirección   sur "],
    "Norte": ["NORTE", "norte"],
    "Centro": ["Centro"],
}

INDICATORS = [
    # name, type, goalType, base goal, unit
    ("Ventas", "average", "maximize", 100_000.0, "$"),
    ("Unidades", "accumulative", "maximize", 1_200.0, "u"),
    ("Quejas", "average", "minimize", 20.0, "#"),
]


def _captured_months(year: int, now: date) -> int:
    if year < now.year:
        return MONTHS_PER_YEAR
    if year > now.year:
        return 0
    return now.month


def _monthly_series(
    rng: np.random.Generator,
    base_goal: float,
    goal_type: str,
    captured: int,
    gap_probability: float,
) -> tuple[list, list]:
    seasonality = 1 + 0.1 * np.sin(np.arange(MONTHS_PER_YEAR) / MONTHS_PER_YEAR * 2 * np.pi)
    goals = [round(float(base_goal * s), 2) for s in seasonality]
    progress: list = [None] * MONTHS_PER_YEAR
    for m in range(captured):
        if rng.random() < gap_probability:
            continue
        drift = float(rng.normal(0.97, 0.08))
        if goal_type == "minimize":
            drift = float(rng.normal(1.03, 0.15))
        progress[m] = round(max(goals[m] * drift, 0.0), 2)
    return goals, progress


def _weekly_series(rng: np.random.Generator, base_goal: float, captured_weeks: int) -> tuple[list, list]:
    goals = [base_goal] * WEEKS_PER_YEAR
    progress: list = [None] * WEEKS_PER_YEAR
    for w in range(captured_weeks):
        progress[w] = round(float(base_goal * rng.normal(1.0, 0.1)), 2)
    return goals, progress


def _board(
    rng: np.random.Generator,
    board_id: int,
    title: str,
    group: str,
    client_id: str,
    year: int,
    now: date,
    gap_probability: float,
    weekly: bool,
) -> dict[str, Any]:
    captured = _captured_months(year, now)
    items = []
    for offset, (name, kind, goal_type, base_goal, unit) in enumerate(INDICATORS):
        scale = float(rng.uniform(0.6, 1.4))
        goals, progress = _monthly_series(rng, base_goal * scale, goal_type, captured, gap_probability)
        items.append({
            "id": board_id * 100 + offset + 1,
            "indicator": name,
            "weight": [40, 35, 25][offset],
            "type": kind,
            "goalType": goal_type,
            "frequency": "monthly",
            "unit": unit,
            "monthlyGoals": goals,
            "monthlyProgress": progress,
            "monthlyNotes": [""] * MONTHS_PER_YEAR,
        })

    items.append({
        "id": board_id * 100 + 9,
        "indicator": "Ticket promedio",
        "weight": 0,
        "type": "average",
        "goalType": "maximize",
        "indicatorType": "formula",
        "formula": f"{{id:{board_id * 100 + 1}}} / {{id:{board_id * 100 + 2}}}",
        "unit": "$",
    })

    if weekly:
        if year < now.year:
            weeks = WEEKS_PER_YEAR
        elif year > now.year:
            weeks = 0
        else:
            weeks = max(week_number(now) - 1, 0)
        w_goals, w_progress = _weekly_series(rng, 50.0, weeks)
        items.append({
            "id": board_id * 100 + 8,
            "indicator": "Visitas",
            "weight": 15,
            "type": "accumulative",
            "goalType": "maximize",
            "frequency": "weekly",
            "weekStart": "Mon",
            "weeklyGoals": w_goals,
            "weeklyProgress": w_progress,
            "unit": "#",
        })

    return {
        "id": board_id,
        "title": title,
        "group": group,
        "area": title.split()[0],
        "clientId": client_id,
        "year": year,
        "orderNumber": board_id,
        "items": items,
    }


def generate_snapshot(cfg: dict[str, Any], now: Optional[date] = None) -> dict[str, Any]:
    """Build a demo snapshot dict.

    Args:
        cfg: Full configuration dictionary (uses ``simulation.*``).
        now: Reference moment deciding which months are captured.

    Returns:
        ``{"dashboards": [...], "users": [...]}``.
    """
    sim = cfg.get("simulation") or {}
    now = now or date.today()
    seed = int(sim.get("seed", 42))
    year = int(sim.get("year") or now.year)
    client_id = str(sim.get("client_id", "DEMO"))
    boards_per_group = int(sim.get("boards_per_group", 3))
    gap_probability = float(sim.get("gap_probability", 0.05))
    groups = sim.get("groups") or DEFAULT_GROUPS

    rng = np.random.default_rng(seed)
    logger.info("Generating demo snapshot (seed=%d, year=%d, client=%s)", seed, year, client_id)

    dashboards = []
    board_id = 1
    for label, variants in groups.items():
        spellings = [label] + list(variants or [])
        for n in range(boards_per_group):
            dashboards.append(_board(
                rng, board_id, f"{label} {n + 1:02d}", spellings[n % len(spellings)],
                client_id, year, now, gap_probability, weekly=(n == 0),
            ))
            board_id += 1

    # An orphan board, picked up by whichever director holds its grant
    dashboards.append(_board(
        rng, board_id, "Proyecto Especial", "", client_id, year, now, gap_probability, weekly=False,
    ))

    labels = list(groups)
    users = [
        {"id": "u-admin", "name": "Administrator", "clientId": client_id, "globalRole": "Admin"},
    ]
    for i, label in enumerate(labels):
        users.append({
            "id": f"u-dir-{i + 1:02d}",
            "name": f"Director {label}",
            "clientId": client_id,
            "globalRole": "Director",
            "directorTitle": label.upper(),
            "dashboardAccess": {
                str(d["id"]): "Editor" for d in dashboards if d["group"] == label
            },
        })
    # The first director also owns the orphan board
    users[1]["dashboardAccess"][str(board_id)] = "Editor"

    if len(labels) >= 2:
        users.append({
            "id": "u-super",
            "name": "Operations Director",
            "clientId": client_id,
            "globalRole": "Director",
            "directorTitle": "OPERACIONES",
            "subGroups": labels[:2],
            "dashboardAccess": {str(board_id): "Viewer"},
        })
    users.append({"id": "u-member", "name": "Analyst", "clientId": client_id, "globalRole": "Member",
                  "dashboardAccess": {"1": "Viewer"}})

    logger.info("Generated %d dashboards and %d users", len(dashboards), len(users))
    return {"dashboards": dashboards, "users": users}


def write_snapshot(cfg: dict[str, Any], now: Optional[date] = None) -> Path:
    """Generate a demo snapshot and write it to ``paths.snapshot_file``."""
    snapshot = generate_snapshot(cfg, now)
    path = Path((cfg.get("paths") or {}).get("snapshot_file", "data/snapshot.json"))
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2, ensure_ascii=False)
    logger.info("Written snapshot -> %s", path)
    return path
