"""
Production Metrics Report

Command-line entry point: loads configuration, validates the requested local
date range, builds the dashboard against the production database and prints
it as JSON.

Usage:
    python -m factory_metrics.app --start 2025-03-01 --end 2025-03-31
    python -m factory_metrics.app --start 2025-03-01 --end 2025-03-31 --kind sewing --formula sewing
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from factory_metrics.analysis.report_assembler import ReportAssembler
from factory_metrics.core.calendar.filters import validate_date_range
from factory_metrics.core.db.fetchers import PostgresObservationStore
from factory_metrics.core.db.pool import close_all_pools
from factory_metrics.core.domain.catalog import RATIO_FORMULAS, RECORD_KINDS
from factory_metrics.core.domain.settings import EngineSettings
from factory_metrics.core.errors import StoreError
from factory_metrics.utils.config import get_app_config, load_config, validate_config

logger = logging.getLogger(__name__)

EXIT_STORE_FAILURE = 1
EXIT_INVALID_REQUEST = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="factory_metrics",
        description="Daily and monthly production rollups, efficiency and utilization",
    )
    parser.add_argument("--start", required=True, help="First local day (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, help="Last local day (YYYY-MM-DD), inclusive")
    parser.add_argument(
        "--kind", action="append", choices=sorted(RECORD_KINDS),
        help="Record kind to include (repeatable, default: all)",
    )
    parser.add_argument(
        "--formula", action="append", choices=sorted(RATIO_FORMULAS),
        help="Ratio formula to include (repeatable, default: all)",
    )
    parser.add_argument("--places", type=int, default=4, help="Decimal places in the output")
    parser.add_argument("--env", default=None, help="Path to a .env file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_config(args.env)
    try:
        app_config = get_app_config()
        settings = EngineSettings.from_app_config(app_config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_INVALID_REQUEST

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, app_config["log_level"], logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config_errors = validate_config()
    if config_errors:
        for error in config_errors:
            logger.error(f"Configuration error: {error}")
        return EXIT_INVALID_REQUEST

    try:
        start, end = validate_date_range(
            settings.calendar(), args.start, args.end, settings.max_range_days
        )
    except ValueError as e:
        logger.error(f"Invalid date range: {e}")
        return EXIT_INVALID_REQUEST

    assembler = ReportAssembler(PostgresObservationStore(calendar=settings.calendar()), settings)
    try:
        report = assembler.dashboard(start, end, kinds=args.kind, formulas=args.formula)
    except StoreError as e:
        logger.error(f"Report failed: {e}")
        return EXIT_STORE_FAILURE
    finally:
        close_all_pools()

    print(json.dumps(report.to_dict(places=args.places), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
