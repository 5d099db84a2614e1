#!/usr/bin/env python3
"""
Performance Report - Score signals from a YAML or JSON file.

Input (YAML or JSON list):
    - id: "42"
      sentiment: bullish
      asset: coin:bitcoin
      called_at: 2024-05-01T14:03:00Z   # or noted_date: 2024-05-01
      label: BTC

Usage:
    python scripts/performance_report.py signals.yaml
    python scripts/performance_report.py signals.json --json > report.json
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core import EngineConfig, configure_logging
from core.clock import ensure_utc, from_iso8601
from performance_engine import Horizon, Signal, format_performance
from price_adapters import parse_asset_reference
from price_resolver import PriceEngine
from reporting import PerformanceReport, PerformanceReportBuilder


logger = logging.getLogger(__name__)


def print_banner(text: str) -> None:
    """Print a banner."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def parse_signal(raw: dict[str, Any]) -> Signal:
    """Signal from one input record; unknown assets become asset=None."""
    asset = None
    if raw.get("asset"):
        try:
            asset = parse_asset_reference(str(raw["asset"]))
        except ValueError as e:
            logger.warning(f"Signal {raw.get('id')}: {e}")

    label = str(raw.get("label") or raw.get("asset") or "")
    called_at = raw.get("called_at")
    if called_at is not None:
        if isinstance(called_at, str):
            called_at = from_iso8601(called_at)
        return Signal(
            signal_id=str(raw["id"]),
            sentiment=raw["sentiment"],
            called_at=ensure_utc(called_at),
            asset=asset,
            asset_label=label,
        )

    noted = raw["noted_date"]
    if isinstance(noted, str):
        noted = date.fromisoformat(noted)
    return Signal.from_noted_date(str(raw["id"]), raw["sentiment"], noted, asset, label)


def load_signals(path: Path) -> list[Signal]:
    with open(path) as f:
        records = yaml.safe_load(f) or []
    if isinstance(records, dict):
        records = records.get("signals", [])
    return [parse_signal(record) for record in records]


def print_report(report: PerformanceReport) -> None:
    print_banner(f"PERFORMANCE REPORT ({report.overall.total_signals} signals)")
    print(f"  Short term: {format_performance(report.overall.short_term)}")
    print(f"  Long term:  {format_performance(report.overall.long_term)}")
    for horizon in Horizon:
        summary = report.overall.summary_for(horizon)
        accuracy = f"{summary.accuracy_pct:.0f}%" if summary.accuracy_pct is not None else "--"
        print(
            f"  {horizon.value:>8}: {format_performance(summary.average_return_pct):>6} "
            f"({summary.correct_count}/{summary.sample_count} correct, {accuracy})"
        )

    print_banner("BY ASSET")
    for asset_key, summary in report.by_asset.items():
        flag = "  [no historical data]" if asset_key in report.degraded_assets else ""
        print(
            f"  {asset_key}: short {format_performance(summary.short_term)}, "
            f"long {format_performance(summary.long_term)}, "
            f"{summary.total_signals} signals{flag}"
        )

    if report.skipped_signals:
        print(f"\n  Skipped (no asset): {', '.join(report.skipped_signals)}")


async def run(args: argparse.Namespace) -> int:
    config = EngineConfig.from_yaml(args.config) if args.config else EngineConfig.from_env()
    signals = load_signals(Path(args.signals))
    logger.info(f"Loaded {len(signals)} signals from {args.signals}")

    now = from_iso8601(args.now) if args.now else None
    async with PriceEngine.from_config(config) as engine:
        builder = PerformanceReportBuilder(
            engine,
            max_concurrency=config.max_concurrent_resolutions,
        )
        report = await builder.build(signals, now=now)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Build a signal performance report")
    parser.add_argument("signals", help="YAML/JSON file with signals")
    parser.add_argument("--config", help="YAML config file (default: environment)")
    parser.add_argument("--now", help="Evaluate as of this ISO-8601 instant")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a summary")
    parser.add_argument("--log-level", default=None, help="Logging level")
    args = parser.parse_args()

    configure_logging(args.log_level or EngineConfig.from_env(dotenv=False).log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
