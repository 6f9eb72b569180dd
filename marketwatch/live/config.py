"""
Configuration types for the live market watcher.

Provides immutable, validated configuration dataclasses for all watcher
components. Values are resolved once at start-up and never reloaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, TypeVar

from marketwatch.live.errors import ConfigurationError
from marketwatch.ports.config_provider import ConfigProvider

# Market data only endpoint (combined streams)
BINANCE_DATA_STREAM_ENDPOINT = "wss://data-stream.binance.vision/stream"

DEFAULT_SYMBOLS: tuple[str, ...] = ("btcusdt", "ethusdt", "bnbusdt", "solusdt")

# Custom safety cap; the venue itself allows 1024 streams per connection
MAX_STREAMS = 512
# Above this many symbols the aggregate !miniTicker@arr stream is used
AGGREGATE_THRESHOLD = 200

T = TypeVar("T")


def parse_symbols(raw: str) -> tuple[str, ...]:
    """Split a comma separated symbol list, trimming and lower-casing entries."""
    return tuple(s.strip().lower() for s in raw.split(",") if s.strip())


@dataclass(frozen=True)
class SubscriptionConfig:
    """Configuration for the subscription planner."""

    symbols: tuple[str, ...] = DEFAULT_SYMBOLS
    time_unit: str = ""  # "" | "microsecond"
    max_streams: int = MAX_STREAMS
    aggregate_threshold: int = AGGREGATE_THRESHOLD
    endpoint: str = BINANCE_DATA_STREAM_ENDPOINT

    def __post_init__(self) -> None:
        if self.max_streams <= 0:
            raise ConfigurationError(
                "max_streams must be positive",
                field="max_streams",
                value=self.max_streams,
            )
        if not (0 <= self.aggregate_threshold < self.max_streams):
            raise ConfigurationError(
                "aggregate_threshold must be non-negative and below max_streams",
                field="aggregate_threshold",
                value=self.aggregate_threshold,
            )

    @property
    def microsecond(self) -> bool:
        """Whether microsecond timestamps are requested from the venue."""
        return self.time_unit.lower().startswith("micro")


@dataclass(frozen=True)
class ConnectionConfig:
    """Configuration for connection handling and the reconnect policy."""

    connect_timeout_s: float = 10.0
    base_delay_ms: int = 1000
    max_delay_ms: int = 15_000
    max_exponent: int = 5
    jitter_ms: int = 500
    max_disconnects: int = 5  # Cumulative per run, never reset

    def __post_init__(self) -> None:
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.base_delay_ms <= 0 or self.max_delay_ms < self.base_delay_ms:
            raise ConfigurationError(
                "max_delay_ms must be at least base_delay_ms and both positive",
                field="max_delay_ms",
                value=self.max_delay_ms,
            )
        if self.max_exponent < 0:
            raise ConfigurationError(
                "max_exponent must be non-negative",
                field="max_exponent",
                value=self.max_exponent,
            )
        if self.jitter_ms < 0:
            raise ConfigurationError(
                "jitter_ms must be non-negative",
                field="jitter_ms",
                value=self.jitter_ms,
            )
        if self.max_disconnects <= 0:
            raise ConfigurationError(
                "max_disconnects must be positive",
                field="max_disconnects",
                value=self.max_disconnects,
            )


@dataclass(frozen=True)
class HealthConfig:
    """Configuration for heartbeat monitoring."""

    check_interval_s: float = 10.0
    unsolicited_ping_after_s: float = 50.0  # Prompt the server with an empty ping
    grace_no_ping_s: float = 75.0  # Treat the session as stalled
    expected_ping_interval_s: float = 60.0

    def __post_init__(self) -> None:
        if self.check_interval_s <= 0:
            raise ConfigurationError(
                "check_interval_s must be positive",
                field="check_interval_s",
                value=self.check_interval_s,
            )
        if self.unsolicited_ping_after_s <= 0:
            raise ConfigurationError(
                "unsolicited_ping_after_s must be positive",
                field="unsolicited_ping_after_s",
                value=self.unsolicited_ping_after_s,
            )
        if self.grace_no_ping_s <= self.unsolicited_ping_after_s:
            raise ConfigurationError(
                "grace_no_ping_s must exceed unsolicited_ping_after_s",
                field="grace_no_ping_s",
                value=self.grace_no_ping_s,
            )


@dataclass(frozen=True)
class TelemetryConfig:
    """Configuration for periodic status reporting."""

    interval_s: float = 10.0
    display_full: bool = True
    jsonl_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.interval_s <= 0:
            raise ConfigurationError(
                "interval_s must be positive",
                field="interval_s",
                value=self.interval_s,
            )


@dataclass(frozen=True)
class WatcherConfig:
    """
    Immutable top-level configuration for the market watcher.

    Example:
        config = WatcherConfig(
            subscription=SubscriptionConfig(symbols=("btcusdt", "ethusdt")),
            hard_reset_interval_s=6 * 3600,
        )
    """

    subscription: SubscriptionConfig = field(default_factory=SubscriptionConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)

    # Proactive reconnect purely on elapsed time
    hard_reset_interval_s: float = 12 * 60 * 60

    def __post_init__(self) -> None:
        if self.hard_reset_interval_s <= 0:
            raise ConfigurationError(
                "hard_reset_interval_s must be positive",
                field="hard_reset_interval_s",
                value=self.hard_reset_interval_s,
            )

    @classmethod
    def from_env(cls, provider: ConfigProvider) -> WatcherConfig:
        """Build a config from environment-style settings, falling back to defaults."""
        sub = SubscriptionConfig()
        conn = ConnectionConfig()
        health = HealthConfig()
        tele = TelemetryConfig()

        raw_symbols = provider.get("symbols")
        symbols = parse_symbols(raw_symbols) if raw_symbols is not None else sub.symbols
        if not symbols:
            raise ConfigurationError("At least one symbol must be configured", field="symbols")

        jsonl = provider.get("status_jsonl")

        return cls(
            subscription=SubscriptionConfig(
                symbols=symbols,
                time_unit=(provider.get("time_unit") or sub.time_unit).strip().lower(),
                max_streams=_setting(provider, "max_streams", int, sub.max_streams),
                aggregate_threshold=_setting(
                    provider, "aggregate_threshold", int, sub.aggregate_threshold
                ),
                endpoint=provider.get("endpoint") or sub.endpoint,
            ),
            connection=ConnectionConfig(
                connect_timeout_s=_setting(
                    provider, "connect_timeout_s", float, conn.connect_timeout_s
                ),
                base_delay_ms=_setting(provider, "base_delay_ms", int, conn.base_delay_ms),
                max_delay_ms=_setting(provider, "max_delay_ms", int, conn.max_delay_ms),
                max_exponent=_setting(provider, "max_exponent", int, conn.max_exponent),
                jitter_ms=_setting(provider, "jitter_ms", int, conn.jitter_ms),
                max_disconnects=_setting(provider, "max_disconnects", int, conn.max_disconnects),
            ),
            health=HealthConfig(
                check_interval_s=_setting(
                    provider, "health_check_interval_s", float, health.check_interval_s
                ),
                unsolicited_ping_after_s=_setting(
                    provider, "unsolicited_ping_after_s", float, health.unsolicited_ping_after_s
                ),
                grace_no_ping_s=_setting(provider, "grace_no_ping_s", float, health.grace_no_ping_s),
                expected_ping_interval_s=_setting(
                    provider, "expected_ping_interval_s", float, health.expected_ping_interval_s
                ),
            ),
            telemetry=TelemetryConfig(
                interval_s=_setting(provider, "status_interval_s", float, tele.interval_s),
                display_full=(provider.get("display_full") or "1") != "0",
                jsonl_path=Path(jsonl) if jsonl else None,
            ),
            hard_reset_interval_s=_setting(
                provider, "hard_reset_interval_s", float, 12 * 60 * 60
            ),
        )


def _setting(provider: ConfigProvider, key: str, cast: Callable[[str], T], default: T) -> T:
    """Fetch and convert a single setting."""
    raw = provider.get(key)
    if raw is None:
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {key}",
            field=key,
            value=raw,
        ) from e
