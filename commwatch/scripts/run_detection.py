#!/usr/bin/env python3
"""
CommWatch Detection Runner
============================
Runs a detection pass (or a baseline recompute) for one tenant outside the
HTTP service, e.g. from cron.

Usage:
  python -m commwatch.scripts.run_detection --tenant-id acme
  python -m commwatch.scripts.run_detection --tenant-id acme --recompute-baselines

Output: the run summary as JSON on stdout. Exit code 1 when the event store
cannot be read.

Requirements:
  DATABASE_URL env var pointing to the CommWatch database.
  ENRICHMENT_API_KEY (optional) to enable explanations.
"""

import argparse
import json
import sys

from commwatch.services.shared.config import EngineConfig
from commwatch.services.shared.database import create_all_tables
from commwatch.services.shared.errors import UpstreamReadError
from commwatch.services.behavioural.engine import recompute_all_baselines, run_detection


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Run CommWatch anomaly detection for a tenant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--tenant-id", default="default", help="Tenant identifier (default: 'default')")
    parser.add_argument(
        "--recompute-baselines",
        action="store_true",
        help="Recompute sender baselines instead of running detection",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running (first run on a fresh database)",
    )
    args = parser.parse_args(argv)

    if args.create_tables:
        create_all_tables()

    config = EngineConfig.from_env()
    try:
        if args.recompute_baselines:
            summary = recompute_all_baselines(args.tenant_id, config)
        else:
            summary = run_detection(args.tenant_id, config)
    except UpstreamReadError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
