"""
Command-line interface.

Usage:
    farmwatch init-db
    farmwatch import-csv --farm-id farm_global_2 --file data/farm2.csv --temp-unit c
    farmwatch import-open-meteo --farm-id farm_global_2 --start-date 2025-06-01 --end-date 2025-06-07
    farmwatch seed-ground-truth --farm-id farm_global_2 --lookback-hours 24
    farmwatch delete-ground-truth --farm-id farm_global_2
    farmwatch run-experiments --farm-id farm_global_2
    farmwatch run-experiments --farm-id farm_global_2 --csv data/farm2.csv
    farmwatch evaluate --farm-id farm_global_2 --experiment-id exp_dynamic_v1

Every command loads configuration from --config (or CONFIG_PATH), opens the
store, seeds configured farms and static bands, and prints a JSON summary.

Exit codes:
    0 success, 2 configuration error, 3 insufficient data, 1 anything else.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Any, Dict, List, Optional, Sequence

import structlog

from farmwatch.config.loader import load_config
from farmwatch.config.models import AppConfig
from farmwatch.evaluation.harness import ExperimentHarness, ExperimentOutcome
from farmwatch.evaluation.scorer import evaluate_experiment
from farmwatch.evaluation.synthesizer import delete_ground_truth, seed_ground_truth
from farmwatch.exceptions import ConfigurationError, DataInsufficiencyError
from farmwatch.ingestion.csv_importer import import_readings_csv
from farmwatch.ingestion.open_meteo import import_open_meteo_archive
from farmwatch.interfaces.stores import DataStore
from farmwatch.services import create_store, setup_logging
from farmwatch.storage.bootstrap import seed_from_config
from farmwatch.storage.memory import InMemoryStore

logger = structlog.get_logger(__name__)


def parse_mapping(pairs: Optional[Sequence[str]]) -> Optional[Dict[str, str]]:
    """Parse field=column pairs into a column mapping."""
    if not pairs:
        return None
    mapping: Dict[str, str] = {}
    for pair in pairs:
        field, sep, column = pair.partition("=")
        if not sep or not field or not column:
            raise ConfigurationError(f"Invalid mapping '{pair}', expected field=column")
        mapping[field.strip()] = column.strip()
    return mapping


def _outcome_summary(outcome: ExperimentOutcome) -> Dict[str, Any]:
    record = outcome.record
    return {
        "experiment_id": outcome.config.experiment_id,
        "alerts": len(outcome.alerts),
        "tp": record.tp,
        "fp": record.fp,
        "fn": record.fn,
        "precision": record.precision,
        "recall": record.recall,
        "false_alert_rate": record.false_alert_rate,
        "miss_rate": record.miss_rate,
        "lead_time_min": record.lead_time_min,
        "alerts_per_day": record.alerts_per_day,
        "window_label": record.window_label.value,
    }


async def _open_store(config: AppConfig, in_memory: bool = False) -> DataStore:
    store: DataStore = InMemoryStore() if in_memory else await create_store(config)
    await seed_from_config(store, config)
    return store


async def cmd_init_db(args: argparse.Namespace, config: AppConfig, store: DataStore) -> Dict[str, Any]:
    farms = await store.list_farms()
    return {"status": "ok", "farms": [f.farm_id for f in farms]}


async def cmd_import_csv(args: argparse.Namespace, config: AppConfig, store: DataStore) -> Dict[str, Any]:
    return await import_readings_csv(
        args.file,
        args.farm_id,
        reading_store=store,
        farm_store=store,
        mapping=parse_mapping(args.map),
        has_header=not args.no_header,
        delimiter=args.delimiter,
        temp_unit=args.temp_unit,
    )


async def cmd_import_open_meteo(
    args: argparse.Namespace, config: AppConfig, store: DataStore
) -> Dict[str, Any]:
    return await import_open_meteo_archive(
        args.farm_id,
        reading_store=store,
        farm_store=store,
        start_date=args.start_date,
        end_date=args.end_date,
        latitude=args.latitude,
        longitude=args.longitude,
        timezone=args.timezone,
    )


async def cmd_seed_ground_truth(
    args: argparse.Namespace, config: AppConfig, store: DataStore
) -> Dict[str, Any]:
    ground_truth = config.features.ground_truth
    events = await seed_ground_truth(
        args.farm_id,
        reading_store=store,
        event_store=store,
        lookback_hours=args.lookback_hours or ground_truth.default_lookback_hours,
        min_readings=ground_truth.min_readings,
        farm_store=store,
    )
    return {
        "farm_id": args.farm_id,
        "inserted": len(events),
        "events": [
            {
                "event_type": e.event_type,
                "start": e.start.isoformat(),
                "end": e.end.isoformat(),
                "severity": e.severity.value,
            }
            for e in events
        ],
    }


async def cmd_delete_ground_truth(
    args: argparse.Namespace, config: AppConfig, store: DataStore
) -> Dict[str, Any]:
    deleted = await delete_ground_truth(args.farm_id, store, farm_store=store)
    return {"farm_id": args.farm_id, "deleted": deleted}


async def cmd_run_experiments(
    args: argparse.Namespace, config: AppConfig, store: DataStore
) -> Dict[str, Any]:
    if args.csv:
        stats = await import_readings_csv(
            args.csv,
            args.farm_id,
            reading_store=store,
            farm_store=store,
            temp_unit=args.temp_unit,
        )
        logger.info("backtest_readings_loaded", farm_id=args.farm_id, **stats)

    if args.csv or args.seed_ground_truth:
        await seed_ground_truth(
            args.farm_id,
            reading_store=store,
            event_store=store,
            lookback_hours=args.lookback_hours or config.features.ground_truth.default_lookback_hours,
            min_readings=config.features.ground_truth.min_readings,
            farm_store=store,
        )

    harness = ExperimentHarness(
        store,
        config.experiments,
        safety_bounds=config.thresholds.safety_bounds,
        severities=config.alerts.severities,
        metrics=config.alerts.monitored_metrics,
    )
    outcomes = await harness.run(
        args.farm_id,
        lookback_hours=args.lookback_hours,
        experiment_ids=args.experiment or None,
    )
    return {
        "farm_id": args.farm_id,
        "experiments": [_outcome_summary(o) for o in outcomes],
    }


async def cmd_evaluate(args: argparse.Namespace, config: AppConfig, store: DataStore) -> Dict[str, Any]:
    record = await evaluate_experiment(
        args.farm_id,
        reading_store=store,
        alert_store=store,
        event_store=store,
        metrics_store=store,
        experiment_id=args.experiment_id,
        lookback_hours=args.lookback_hours or config.experiments.default_lookback_hours,
        lead_window_minutes=config.experiments.lead_window_minutes,
        farm_store=store,
    )
    return record.model_dump(mode="json")


COMMANDS = {
    "init-db": cmd_init_db,
    "import-csv": cmd_import_csv,
    "import-open-meteo": cmd_import_open_meteo,
    "seed-ground-truth": cmd_seed_ground_truth,
    "delete-ground-truth": cmd_delete_ground_truth,
    "run-experiments": cmd_run_experiments,
    "evaluate": cmd_evaluate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="farmwatch",
        description="Farm sensor threshold lab: ingestion, ground truth and backtests",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config"),
        help="Configuration directory (default: CONFIG_PATH or ./config)",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the schema and seed farms and static thresholds")

    p = sub.add_parser("import-csv", help="Import readings from a CSV file")
    p.add_argument("--farm-id", required=True)
    p.add_argument("--file", required=True)
    p.add_argument(
        "--map",
        nargs="*",
        metavar="FIELD=COLUMN",
        help="Column mapping for timestamp, temp, rh, soil_moisture, tank",
    )
    p.add_argument("--no-header", action="store_true", help="File has no header row")
    p.add_argument("--delimiter", default=",")
    p.add_argument("--temp-unit", choices=("f", "c"), default="f")

    p = sub.add_parser("import-open-meteo", help="Import hourly archive weather")
    p.add_argument("--farm-id", required=True)
    p.add_argument("--start-date", required=True, help="YYYY-MM-DD")
    p.add_argument("--end-date", required=True, help="YYYY-MM-DD")
    p.add_argument("--latitude", type=float, default=None)
    p.add_argument("--longitude", type=float, default=None)
    p.add_argument("--timezone", default="UTC")

    p = sub.add_parser("seed-ground-truth", help="Synthesize and replace ground-truth events")
    p.add_argument("--farm-id", required=True)
    p.add_argument("--lookback-hours", type=float, default=None)

    p = sub.add_parser("delete-ground-truth", help="Delete ground-truth events for a farm")
    p.add_argument("--farm-id", required=True)

    p = sub.add_parser("run-experiments", help="Backtest and score every configured strategy")
    p.add_argument("--farm-id", required=True)
    p.add_argument("--lookback-hours", type=float, default=None)
    p.add_argument(
        "--experiment",
        action="append",
        metavar="ID",
        help="Run only this experiment (repeatable)",
    )
    p.add_argument(
        "--csv",
        default=None,
        help="Backtest a CSV file in memory; ground truth is synthesized from it",
    )
    p.add_argument("--temp-unit", choices=("f", "c"), default="f")
    p.add_argument(
        "--seed-ground-truth",
        action="store_true",
        help="Re-synthesize ground truth before running",
    )

    p = sub.add_parser("evaluate", help="Score stored alerts against ground truth")
    p.add_argument("--farm-id", required=True)
    p.add_argument("--experiment-id", default=None, help="Score backtest alerts (default: live)")
    p.add_argument("--lookback-hours", type=float, default=None)

    return parser


async def run_command(args: argparse.Namespace) -> Dict[str, Any]:
    config = load_config(args.config)
    setup_logging(args.log_level or config.log_level.value, config.features.logging.format)

    in_memory = getattr(args, "csv", None) is not None
    store = await _open_store(config, in_memory=in_memory)
    try:
        return await COMMANDS[args.command](args, config, store)
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    args = build_parser().parse_args(argv)

    try:
        result = asyncio.run(run_command(args))
    except ConfigurationError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 2
    except DataInsufficiencyError as e:
        logger.error(
            "command_failed",
            command=args.command,
            error=str(e),
            available=e.available,
            required=e.required,
        )
        print(f"error: {e}", file=sys.stderr)
        return 3
    except Exception as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
