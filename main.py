"""
Tick Feed CLI - Download historical ticks for one instrument and print or store them.

Usage:
    python main.py EURUSD 2020-03-12T13:00 2020-03-12T15:00 --format text
    python main.py USDJPY 2024-01-02 2024-01-03 --concurrency 2 --db ./data/ticks.db
"""

from __future__ import annotations
import argparse
import asyncio
import json
import os
import sys
from datetime import datetime
from typing import List, Optional
import logging

from dotenv import load_dotenv

# Load .env file before config is read
load_dotenv()

from config import FeedConfig
from archive.errors import FeedError
from archive.models import TickSeries
from core.orchestrator import download_ticks
from storage.tick_store import TickStore

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Download historical tick data from the Dukascopy archive.")
    parser.add_argument("symbol", help="Instrument symbol, e.g. EURUSD")
    parser.add_argument("start", type=datetime.fromisoformat, help="UTC start, ISO format")
    parser.add_argument("end", type=datetime.fromisoformat, help="UTC end (inclusive), ISO format")
    parser.add_argument("--concurrency", type=int, default=None, help="Parallel segment downloads")
    parser.add_argument("--fail-fast", action="store_true", default=None, help="Abort on first failed hour")
    parser.add_argument("--format", choices=("json", "text"), default="json", help="Output format")
    parser.add_argument("--db", default=None, help="Also save the series to this SQLite file")
    parser.add_argument("--save", action="store_true", help="Also save the series to the configured DB_PATH")
    parser.add_argument("--quiet", action="store_true", help="Do not print ticks")
    return parser.parse_args(argv)


def print_series(series: TickSeries, fmt: str):
    for tick in series:
        if fmt == "json":
            print(json.dumps(tick.to_dict()))
        else:
            print(tick)


def save_series(series: TickSeries, db_path: str) -> int:
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    with TickStore(db_path) as store:
        return store.save_series(series)


async def run(args: argparse.Namespace, config: FeedConfig) -> int:
    try:
        series = await download_ticks(
            args.symbol,
            args.start,
            args.end,
            concurrency_limit=args.concurrency,
            fail_fast=args.fail_fast,
            config=config,
        )
    except FeedError as e:
        logger.error(f"[CLI] {type(e).__name__}: {e}")
        return 1

    if not args.quiet:
        print_series(series, args.format)

    for hour in series.gap_hours:
        gap = series.gaps[hour]
        logger.info(f"[CLI] Gap {hour:%Y-%m-%d %H}h: {gap.reason.value}{f' ({gap.error})' if gap.error else ''}")

    db_path = args.db or (config.storage.db_path if args.save else None)
    if db_path:
        series_id = save_series(series, db_path)
        logger.info(f"[CLI] Stored as series #{series_id} in {db_path}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""
    config = FeedConfig.from_env()
    args = parse_args(argv)
    setup_logging(config.log_level)
    return asyncio.run(run(args, config))


if __name__ == "__main__":
    sys.exit(main())
