#!/usr/bin/env python3
"""
Execute one MRP run and optionally turn its shortages into purchase requests.

Uses the active configuration (get_active_config) for the database URL, the
default planning horizon and the number prefixes.

Usage:
    python3 scripts/run_mrp.py [options]

Examples:
    # Create the schema, then run with the configured horizon
    python3 scripts/run_mrp.py --db-url sqlite:///mfg.db --init-schema

    # 14-day horizon, generate purchase requests for the shortages
    python3 scripts/run_mrp.py --horizon-days 14 --generate-prs

    # List the most recent runs
    python3 scripts/run_mrp.py --list-runs
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Execute an MRP run: net open production orders against stock.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration set YAML (default: MFG_CONFIG_PATH or the packaged default)",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: from the configuration set)",
    )
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create missing tables before running",
    )
    parser.add_argument(
        "--horizon-days",
        type=int,
        default=None,
        help="Planning horizon in days (default: mrp.default_horizon_days)",
    )
    parser.add_argument(
        "--generate-prs",
        action="store_true",
        help="Generate purchase requests from the run's shortages",
    )
    parser.add_argument(
        "--list-runs",
        action="store_true",
        help="Print the latest runs and exit",
    )
    parser.add_argument(
        "--actor-id",
        default=None,
        help="Actor UUID recorded on the run (default: MRP_ACTOR_ID or a new UUID)",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    actor_id = UUID(args.actor_id or os.environ.get("MRP_ACTOR_ID") or str(uuid4()))

    # Lazy imports so we fail fast on args first
    from mfg_config import get_active_config
    from mfg_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from mfg_kernel.db.immutability import register_immutability_listeners
    from mfg_kernel.domain.clock import SystemClock
    from mfg_kernel.exceptions import ManufacturingKernelError, NoShortagesError
    from mfg_kernel.logging_config import configure_logging
    from mfg_kernel.services.sequence_service import SequenceService
    from mfg_modules.mrp import MRPService

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(level=config.logging.level.upper())
    db_url = args.db_url or config.database.url
    init_engine_from_url(db_url, echo=config.database.echo, pool_size=config.database.pool_size)
    if args.init_schema:
        create_tables()
    register_immutability_listeners()

    session = get_session()
    if args.init_schema:
        SequenceService(session).initialize_sequences()
        session.commit()
    service = MRPService(session, SystemClock(), config.mrp)
    try:
        if args.list_runs:
            page = service.list_runs(page_size=20)
            print(f"{page.total} run(s)")
            for run in page.runs:
                print(
                    f"  {run.run_number}  {run.status.value:<9}  "
                    f"requirements={run.total_requirements}  shortages={run.total_shortages}"
                )
            return 0

        run = service.execute_mrp(args.horizon_days, actor_id=actor_id)
        print(f"Run {run.run_number}: {run.status.value}")
        print(f"  Horizon: {run.planning_horizon_days} days")
        print(f"  Requirements: {run.total_requirements}, shortages: {run.total_shortages}")
        if run.notes:
            print(f"  Notes: {run.notes}")

        if not args.generate_prs:
            return 0

        try:
            report = service.generate_prs_from_mrp(run.id, actor_id=actor_id)
        except NoShortagesError:
            print("No shortages; no purchase requests generated.")
            return 0
        for result in report.generated:
            print(f"  {result.pr_number}: {result.total_quantity} {result.item_code}")
        for skipped in report.skipped:
            print(f"  skipped item {skipped.item_id}: {skipped.reason}")
        return 0
    except ManufacturingKernelError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
