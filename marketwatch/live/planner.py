"""
Subscription planner.

Turns a requested symbol list into a concrete stream selection: either a
multiplexed ``<symbol>@miniTicker`` combined stream, or the venue's
aggregate ``!miniTicker@arr`` stream once the symbol count passes the
aggregate threshold.
"""

from __future__ import annotations

import logging
from typing import Iterable

from marketwatch.live.config import (
    AGGREGATE_THRESHOLD,
    BINANCE_DATA_STREAM_ENDPOINT,
    MAX_STREAMS,
    SubscriptionConfig,
)
from marketwatch.live.types import PlanMode, SubscriptionPlan

logger = logging.getLogger(__name__)

AGGREGATE_STREAM = "!miniTicker@arr"
MICROSECOND_QUERY = "&timeUnit=MICROSECOND"


def plan_subscription(
    symbols: Iterable[str],
    max_streams: int = MAX_STREAMS,
    aggregate_threshold: int = AGGREGATE_THRESHOLD,
    time_unit: str = "",
    endpoint: str = BINANCE_DATA_STREAM_ENDPOINT,
) -> SubscriptionPlan:
    """
    Build the subscription plan for a symbol list.

    The aggregate threshold is checked before the safety cap. With the
    configured threshold below the cap, truncation is only reachable when
    this function is called directly with a threshold at or above the cap.

    Args:
        symbols: Requested symbols, any case
        max_streams: Safety cap on encoded stream names
        aggregate_threshold: Above this count the aggregate stream is used
        time_unit: Optional time unit hint ("microsecond" variants honoured)
        endpoint: Combined stream endpoint

    Returns:
        SubscriptionPlan with the target URL
    """
    requested = tuple(s.strip().lower() for s in symbols if s and s.strip())
    suffix = MICROSECOND_QUERY if time_unit.lower().startswith("micro") else ""

    if len(requested) > aggregate_threshold:
        url = f"{endpoint}?streams={AGGREGATE_STREAM}{suffix}"
        logger.debug(
            f"{len(requested)} symbols exceed aggregate threshold {aggregate_threshold}, "
            f"using {AGGREGATE_STREAM}"
        )
        return SubscriptionPlan(symbols=requested, mode=PlanMode.AGGREGATE_ALL, url=url)

    truncated = len(requested) > max_streams
    if truncated:
        logger.warning(
            f"Too many symbols ({len(requested)}) > max_streams ({max_streams}). Trimming."
        )
    limited = requested[:max_streams]

    streams = "/".join(f"{s}@miniTicker" for s in limited)
    url = f"{endpoint}?streams={streams}{suffix}"
    return SubscriptionPlan(
        symbols=limited,
        mode=PlanMode.MULTIPLEXED,
        url=url,
        truncated=truncated,
    )


def plan_from_config(config: SubscriptionConfig) -> SubscriptionPlan:
    """Build the plan described by a SubscriptionConfig."""
    return plan_subscription(
        config.symbols,
        max_streams=config.max_streams,
        aggregate_threshold=config.aggregate_threshold,
        time_unit=config.time_unit,
        endpoint=config.endpoint,
    )
