"""marketwatch CLI entrypoint.

Usage: marketwatch --symbols BTCUSDT ETHUSDT --time-unit microsecond

Settings are read once from the environment (SYMBOLS, TIME_UNIT, DISPLAY_FULL,
...); ``KEY=value`` arguments and flags override them. The process exits with
the code reported by the watcher: 0 after SIGINT/SIGTERM, 1 once the
disconnect budget is exhausted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from marketwatch.adapters.env_provider import EnvSettingsProvider
from marketwatch.live.config import WatcherConfig
from marketwatch.live.errors import ConfigurationError
from marketwatch.live.watcher import MarketWatcher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marketwatch",
        description="Stream mini tickers and keep the connection alive",
    )
    parser.add_argument(
        "overrides",
        nargs="*",
        metavar="KEY=VALUE",
        help="Environment-style overrides, e.g. SYMBOLS=BTCUSDT,ETHUSDT",
    )
    parser.add_argument(
        "--symbols",
        "--symbol",
        dest="symbols",
        nargs="+",
        help="Symbols, space or comma separated (default: SYMBOLS env)",
    )
    parser.add_argument("--time-unit", help='Time unit hint ("microsecond")')
    parser.add_argument("--max-streams", type=int, help="Safety cap on multiplexed streams")
    parser.add_argument(
        "--aggregate-threshold",
        type=int,
        help="Use the all-symbols stream above this many symbols",
    )
    parser.add_argument(
        "--max-disconnects",
        type=int,
        help="Cumulative disconnect budget before giving up",
    )
    parser.add_argument(
        "--hard-reset-interval",
        type=float,
        help="Seconds between proactive reconnects",
    )
    parser.add_argument("--status-interval", type=float, help="Seconds between status reports")
    parser.add_argument(
        "--no-table",
        action="store_true",
        help="Do not print the snapshot table with each status report",
    )
    parser.add_argument("--status-jsonl", type=Path, help="Append status records to this file")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL env or INFO)")
    return parser


def parse_overrides(pairs: list[str]) -> dict[str, str]:
    """Parse ``KEY=value`` pairs."""
    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Expected KEY=VALUE, got {pair!r}", field="overrides")
        parsed[key.strip()] = value
    return parsed


def build_environment(
    args: argparse.Namespace,
    base: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Merge environment, ``KEY=value`` overrides and flags (highest precedence)."""
    env = dict(os.environ if base is None else base)
    env.update(parse_overrides(args.overrides or []))

    if args.symbols:
        env["SYMBOLS"] = ",".join(args.symbols)
    flag_values = {
        "TIME_UNIT": args.time_unit,
        "MAX_STREAMS": args.max_streams,
        "AGGREGATE_THRESHOLD": args.aggregate_threshold,
        "MAX_DISCONNECTS": args.max_disconnects,
        "HARD_RESET_INTERVAL_S": args.hard_reset_interval,
        "STATUS_INTERVAL_S": args.status_interval,
        "STATUS_JSONL": args.status_jsonl,
        "LOG_LEVEL": args.log_level,
    }
    for key, value in flag_values.items():
        if value is not None:
            env[key] = str(value)
    if args.no_table:
        env["DISPLAY_FULL"] = "0"
    return env


async def run(config: WatcherConfig) -> Optional[int]:
    watcher = MarketWatcher(config)
    watcher.install_signal_handlers()
    await watcher.start()
    return await watcher.wait()


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        provider = EnvSettingsProvider(environ=build_environment(args))
        level = (provider.get("log_level") or "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        config = WatcherConfig.from_env(provider)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    exit_code = asyncio.run(run(config))
    return 0 if exit_code is None else exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
