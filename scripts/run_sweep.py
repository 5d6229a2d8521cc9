#!/usr/bin/env python3
"""
Run one pass lifecycle sweep (expire, notify, clean up).

Intended for a daily cron job:
    python -m scripts.run_sweep
    python -m scripts.run_sweep --dry-run --grace-days 30 --retention-days 90
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add the app to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stampwallet.core.config import settings
from stampwallet.services.lifecycle import create_lifecycle_manager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the wallet pass lifecycle sweep.")
    parser.add_argument("--dry-run", action="store_true", help="report what would change without writing")
    parser.add_argument("--grace-days", type=int, default=settings.pass_grace_days)
    parser.add_argument("--retention-days", type=int, default=settings.pass_retention_days)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    manager = create_lifecycle_manager()
    result = asyncio.run(manager.sweep(
        grace_days=args.grace_days,
        retention_days=args.retention_days,
        dry_run=args.dry_run,
    ))
    print(json.dumps(result.model_dump(), indent=2))
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())
