#!/usr/bin/env python3
"""
Backfill Prices - Warm the shared cache for many assets.

Resolves daily prices over a date range (plus the current price) for
each asset, with per-provider throttling. Intended for the SQL cache
backend so later reports start warm.

Usage:
    python scripts/backfill_prices.py coin:bitcoin coin:ethereum --days 30
    python scripts/backfill_prices.py --assets-file assets.txt --days 90 --no-current
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backfill import BackfillRunner, BackfillTask, ThrottlePolicy, default_policies
from core import EngineConfig, configure_logging
from core.clock import today_utc
from price_adapters import parse_asset_reference
from price_resolver import PriceEngine


logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def read_assets(args: argparse.Namespace) -> list[str]:
    assets = list(args.assets)
    if args.assets_file:
        with open(args.assets_file) as f:
            assets.extend(
                line.strip() for line in f
                if line.strip() and not line.startswith("#")
            )
    return assets


async def run(args: argparse.Namespace) -> int:
    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig.from_env()

    end = today_utc()
    dates = [end - timedelta(days=offset) for offset in range(args.days, 0, -1)]
    tasks = []
    for text in read_assets(args):
        try:
            asset = parse_asset_reference(text)
        except ValueError as e:
            logger.warning(f"Skipping {text!r}: {e}")
            continue
        tasks.append(BackfillTask(asset=asset, dates=dates, include_current=not args.no_current))

    if not tasks:
        print("No assets to backfill")
        return 2

    policies = default_policies(config)
    if args.min_interval is not None:
        for name in ("defillama", "dexscreener", "reservoir", "moralis", "opensea"):
            policies[name] = ThrottlePolicy(
                max_concurrency=args.max_in_flight,
                min_interval_seconds=args.min_interval,
            )

    runner = BackfillRunner(lambda: PriceEngine.from_config(config), policies=policies)
    report = await runner.run(tasks)

    print_banner(f"BACKFILL: {report.resolved}/{report.requested} resolved")
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if not report.missing else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Warm the price cache")
    parser.add_argument("assets", nargs="*", help="Asset references (coin:<id>, token:..., nft:...)")
    parser.add_argument("--assets-file", help="File with one asset reference per line")
    parser.add_argument("--days", type=int, default=30, help="Days of history to warm")
    parser.add_argument("--no-current", action="store_true", help="Skip current prices")
    parser.add_argument("--min-interval", type=float, default=None,
                        help="Spacing between requests for non-CoinGecko providers")
    parser.add_argument("--max-in-flight", type=int, default=2,
                        help="In-flight bound used with --min-interval")
    parser.add_argument("--config", help="YAML config file (default: environment)")
    parser.add_argument("--log-level", default=None, help="Logging level")
    args = parser.parse_args()

    configure_logging(args.log_level or EngineConfig.from_env(dotenv=False).log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
