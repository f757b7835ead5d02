"""
main.py — KPI Scorecard Engine — CLI Entry Point.

Runs the demo data generator and/or one computation pass over a JSON
snapshot, printing a summary table and optionally writing the enriched
dashboards (real boards + consolidated aggregates, with scores) as JSON.

Usage:
    python main.py --generate-data                       # Write a demo snapshot
    python main.py --score                               # Score paths.snapshot_file
    python main.py --score --year 2025 --now 2025-03-15 --mode definitive
    python main.py --score --viewer u-super --client DEMO --output out.json
    python main.py --full-run --config custom.yaml --log-level DEBUG
"""

import argparse
import logging
import logging.handlers
import os
import sys
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import yaml


def _configure_logging(log_dir: str = "logs", level: str = "INFO") -> None:
    """Send engine logs to <log_dir>/scorecard_YYYYMMDD.log and stdout.

    The file rotates at 10 MB and keeps 7 backups. Stage banners, one INFO
    line per computation pass and data-quality warnings (padded month
    arrays, contested board ownership) all land here. ``LOG_LEVEL`` in the
    environment overrides ``level``.

    Args:
        log_dir: Directory for log files.
        level: Log level string.
    """
    effective_level = os.environ.get("LOG_LEVEL", level).upper()
    numeric = getattr(logging, effective_level, logging.INFO)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_file = Path(log_dir) / f"scorecard_{datetime.today().strftime('%Y%m%d')}.log"

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)-35s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    fh = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=7, encoding="utf-8"
    )
    fh.setFormatter(fmt)
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(numeric)
    root.addHandler(fh)
    root.addHandler(sh)


def _parse_date(text: str) -> date:
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {text!r}") from None


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kpi-scorecard",
        description="KPI Scorecard Engine — compliance, dashboard scores and group consolidation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --generate-data
  python main.py --score --now 2025-03-15
  python main.py --score --viewer u-super --output data/output/scorecard.json
  python main.py --full-run --config custom.yaml --log-level DEBUG
        """,
    )
    parser.add_argument("--config", default="config.yaml",
                        help="Path to config.yaml (default: config.yaml)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    stages = parser.add_argument_group("Pipeline Stages")
    stages.add_argument("--generate-data", action="store_true",
                        help="Generate a synthetic demo snapshot")
    stages.add_argument("--score", action="store_true",
                        help="Run one computation pass over the snapshot")
    stages.add_argument("--full-run", action="store_true",
                        help="Run all stages: generate -> score")

    scope = parser.add_argument_group("Computation Pass")
    scope.add_argument("--snapshot", default=None,
                       help="Snapshot JSON (default: paths.snapshot_file)")
    scope.add_argument("--output", default=None,
                       help="Write enriched dashboards + scores as JSON")
    scope.add_argument("--year", type=int, default=None,
                       help="Target year (default: year of --now)")
    scope.add_argument("--now", type=_parse_date, default=None,
                       help="Reference date YYYY-MM-DD (default: today)")
    scope.add_argument("--mode", choices=["realTime", "definitive"], default=None,
                       help="Calculation mode (default: engine.calculation_mode)")
    scope.add_argument("--viewer", default=None,
                       help="User id of the acting viewer (default: system/admin)")
    scope.add_argument("--client", default=None,
                       help="Restrict the pass to one client id")
    return parser.parse_args()


def run_pipeline(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the requested pipeline stages.

    Args:
        args: Parsed CLI arguments.
        logger: Configured logger.

    Returns:
        0 on success, 1 on error.
    """
    from scorecard.config import EngineSettings, load_config
    from scorecard.models import CalculationMode
    from scorecard.pipeline import load_snapshot, recompute, write_result
    from scorecard.simulator import write_snapshot

    do_all = args.full_run
    now = args.now or date.today()

    try:
        cfg = load_config(args.config)
        settings = EngineSettings.from_config(cfg)
    except Exception as exc:
        logger.error("Configuration failed: %s", exc, exc_info=True)
        return 1

    # -------------------------------------------------------------------------
    # Stage 1: Data generation
    # -------------------------------------------------------------------------
    if do_all or args.generate_data:
        logger.info("=" * 65)
        logger.info("STAGE 1: Demo Snapshot Generation")
        logger.info("=" * 65)
        try:
            path = write_snapshot(cfg, now)
            logger.info("Data generation complete -- %s", path)
        except Exception as exc:
            logger.error("Data generation failed: %s", exc, exc_info=True)
            return 1

    # -------------------------------------------------------------------------
    # Stage 2: Computation pass
    # -------------------------------------------------------------------------
    result = None
    if do_all or args.score:
        logger.info("=" * 65)
        logger.info("STAGE 2: Compliance & Aggregation")
        logger.info("=" * 65)
        snapshot_file = args.snapshot or cfg.get("paths", {}).get("snapshot_file", "data/snapshot.json")
        try:
            snapshot = load_snapshot(snapshot_file, settings.strict_contracts)
            viewer = snapshot.find_user(args.viewer)
            if args.viewer and viewer is None:
                logger.error("Unknown viewer %r", args.viewer)
                return 1
            result = recompute(
                snapshot,
                settings,
                year=args.year or now.year,
                now=now,
                mode=CalculationMode(args.mode) if args.mode else None,
                viewer=viewer,
                client_id=args.client,
            )
        except FileNotFoundError as exc:
            logger.error("Snapshot missing. Run --generate-data first.\n%s", exc)
            return 1
        except Exception as exc:
            logger.error("Computation failed: %s", exc, exc_info=True)
            return 1

        output_file = args.output or cfg.get("paths", {}).get("output_file")
        if output_file:
            try:
                write_result(result, output_file)
            except Exception as exc:
                logger.error("Writing output failed: %s", exc, exc_info=True)
                return 1

    # Final summary
    logger.info("=" * 65)
    logger.info("PIPELINE COMPLETE")
    if result is not None:
        frame = result.summary_frame()
        with pd.option_context("display.max_rows", None, "display.width", 160):
            print(frame.to_string(index=False))
        is_aggregate = frame["aggregate"].astype(bool)
        aggregates = frame[is_aggregate]
        if not aggregates.empty:
            top = aggregates.iloc[0]
            logger.info("  %s: %.1f%% (%s)", top["title"], top["score_pct"], top["status"])
        logger.info("  Dashboards: %d real | %d aggregates",
                    int((~is_aggregate).sum()), len(aggregates))
    logger.info("=" * 65)
    return 0


def main() -> None:
    """Parse args, configure logging, and run pipeline."""
    args = _parse_args()

    try:
        with open(args.config, "r") as fh:
            cfg = yaml.safe_load(fh) or {}
        log_dir = cfg.get("paths", {}).get("log_dir", "logs")
    except (OSError, yaml.YAMLError):
        log_dir = "logs"

    _configure_logging(log_dir=log_dir, level=args.log_level)
    logger = logging.getLogger(__name__)

    if not any([args.full_run, args.generate_data, args.score]):
        print("No stage selected. Use --generate-data, --score or --full-run (see --help).")
        sys.exit(0)

    logger.info(
        "KPI Scorecard Engine v1.0 | %s",
        datetime.today().strftime("%Y-%m-%d %H:%M:%S"),
    )
    sys.exit(run_pipeline(args, logger))


if __name__ == "__main__":
    main()
