#!/usr/bin/env python3
"""
Resolve Price - Query the price engine from the command line.

Usage:
    python scripts/resolve_price.py coin:bitcoin
    python scripts/resolve_price.py token:ethereum:0xa0b8...eb48 --date 2024-06-01
    python scripts/resolve_price.py nft:ethereum:0xbc4c...f13d --instant 2024-06-01T15:30:00Z
    python scripts/resolve_price.py nft:ethereum:0xbc4c...f13d --series-days 30
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, timedelta
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core import EngineConfig, configure_logging
from core.clock import from_iso8601, now_utc
from price_adapters import AssetKind, parse_asset_reference
from price_resolver import PriceEngine


logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


async def resolve(args: argparse.Namespace) -> int:
    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig.from_env()
    asset = parse_asset_reference(args.asset)

    async with PriceEngine.from_config(config) as engine:
        if args.series_days is not None:
            if asset.kind == AssetKind.NFT:
                series = await engine.nft_floor_series(asset, args.series_days)
                rows = [{"date": d.isoformat(), "price": p} for d, p in series]
            elif asset.kind == AssetKind.COIN:
                end = now_utc()
                series = await engine.coin_price_series(asset, end - timedelta(days=args.series_days), end)
                rows = [{"time": t.isoformat(), "price": p} for t, p in series]
            else:
                print("Series are available for coins and NFT collections only")
                return 2
            print_banner(f"SERIES: {asset} ({len(rows)} points)")
            print(json.dumps(rows, indent=2))
            return 0 if rows else 1

        if args.date:
            point = await engine.price_at_date(asset, date.fromisoformat(args.date))
            label = f"at {args.date}"
        elif args.instant:
            instant = from_iso8601(args.instant)
            point = await engine.price_at_instant(asset, instant)
            label = f"at {instant.isoformat()}"
        else:
            point = await engine.current_price(asset)
            label = "current"

        print_banner(f"PRICE: {asset} ({label})")
        if point is None:
            print("  No price available")
            return 1
        print(json.dumps(point.to_dict(), indent=2))

        if args.stats:
            print_banner("ENGINE STATS")
            print(json.dumps(await engine.get_stats(), indent=2, default=str))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Resolve an asset price")
    parser.add_argument("asset", help="coin:<id> | token:<chain>:<address> | nft:<chain>:<address>")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--date", help="UTC day (YYYY-MM-DD)")
    group.add_argument("--instant", help="ISO-8601 instant")
    group.add_argument("--series-days", type=int, help="Daily series length")
    parser.add_argument("--config", help="YAML config file (default: environment)")
    parser.add_argument("--stats", action="store_true", help="Print cache and adapter stats")
    parser.add_argument("--log-level", default=None, help="Logging level")
    args = parser.parse_args()

    configure_logging(args.log_level or EngineConfig.from_env(dotenv=False).log_level)
    try:
        sys.exit(asyncio.run(resolve(args)))
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
