"""
config.py — Runtime settings loaded from config.yaml.

The YAML file is the single place where thresholds, calculation mode,
aggregation strategy and labels are tuned. Any missing key falls back to the
defaults of the dataclasses below.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .groups import FALLBACK_GROUP
from .models import CalculationMode, ComplianceThresholds, coerce_optional, parse_enum

logger = logging.getLogger(__name__)

AGGREGATION_STRATEGIES = ("equal", "manual", "indicator")


@dataclass(frozen=True)
class AggregationSettings:
    """How member boards are weighted when averaging non-accumulative KPIs."""
    strategy: str = "manual"
    indicator_driver: Optional[str] = None
    custom_weights: dict = field(default_factory=dict)
    decimal_precision: int = 2


@dataclass(frozen=True)
class LabelSettings:
    global_title: str = "GLOBAL EXECUTIVE SUMMARY"
    all_groups: str = "ALL"
    fallback_group: str = FALLBACK_GROUP


@dataclass(frozen=True)
class EngineSettings:
    """Everything a computation pass needs besides the snapshot itself."""
    thresholds: ComplianceThresholds = field(default_factory=ComplianceThresholds)
    calculation_mode: CalculationMode = CalculationMode.REAL_TIME
    strict_contracts: bool = False
    aggregation: AggregationSettings = field(default_factory=AggregationSettings)
    strip_prefixes: tuple = ()
    labels: LabelSettings = field(default_factory=LabelSettings)

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "EngineSettings":
        """Build settings from a parsed config.yaml dict.

        Args:
            cfg: Configuration dict (may be empty).

        Returns:
            EngineSettings instance.
        """
        engine = cfg.get("engine") or {}
        agg = cfg.get("aggregation") or {}
        labels = cfg.get("labels") or {}
        groups = cfg.get("groups") or {}
        thresholds = engine.get("default_thresholds") or {}

        defaults = ComplianceThresholds()
        on_track = coerce_optional(thresholds.get("on_track"))
        at_risk = coerce_optional(thresholds.get("at_risk"))

        strategy = str(agg.get("strategy", "manual")).strip().lower()
        if strategy not in AGGREGATION_STRATEGIES:
            logger.warning("Unknown aggregation strategy %r, using 'manual'", strategy)
            strategy = "manual"

        precision = int(agg.get("decimal_precision", 2) or 2)
        if precision not in (1, 2):
            logger.warning("decimal_precision %d not in (1, 2), using 2", precision)
            precision = 2

        return cls(
            thresholds=ComplianceThresholds(
                on_track=defaults.on_track if on_track is None else on_track,
                at_risk=defaults.at_risk if at_risk is None else at_risk,
            ),
            calculation_mode=parse_enum(
                CalculationMode, engine.get("calculation_mode"), CalculationMode.REAL_TIME
            ),
            strict_contracts=bool(engine.get("strict_contracts", False)),
            aggregation=AggregationSettings(
                strategy=strategy,
                indicator_driver=agg.get("indicator_driver") or None,
                custom_weights={str(k): float(v) for k, v in (agg.get("custom_weights") or {}).items()},
                decimal_precision=precision,
            ),
            strip_prefixes=tuple(groups.get("strip_prefixes") or ()),
            labels=LabelSettings(
                global_title=labels.get("global_title", LabelSettings.global_title),
                all_groups=labels.get("all_groups", LabelSettings.all_groups),
                fallback_group=labels.get("fallback_group", LabelSettings.fallback_group),
            ),
        )


def load_config(config_path: str = "config.yaml") -> dict[str, Any]:
    """Read config.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Configuration not found at {path}. Copy config.yaml to the working directory."
        )
    with open(path, "r") as fh:
        return yaml.safe_load(fh) or {}


def load_settings(config_path: str = "config.yaml") -> EngineSettings:
    """Load config.yaml into EngineSettings."""
    settings = EngineSettings.from_config(load_config(config_path))
    logger.debug("Loaded settings from %s: %s", config_path, settings)
    return settings
