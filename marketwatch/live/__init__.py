"""
Live Market Watcher Module.

This module keeps a single multiplexed Binance mini ticker stream alive
despite network instability, server heartbeats and the venue's connection
limits, and caches the latest ticker per symbol.

Components:
- MarketWatcher: Top-level lifecycle (start/stop, timers, signals)
- ConnectionManager: Session state machine, heartbeats, reconnects
- ReconnectPolicy: Exponential backoff and the cumulative disconnect budget
- HealthMonitor: Heartbeat recency checks and forced termination
- SnapshotCache: Latest ticker per symbol
- TelemetryReporter: Periodic read-only status output
- plan_subscription: Symbol list to stream selection

Usage:
    from marketwatch.live import MarketWatcher, WatcherConfig

    watcher = MarketWatcher(WatcherConfig())
    await watcher.start()
    ...
    await watcher.stop(None)
"""

from marketwatch.live.cache import SnapshotCache
from marketwatch.live.config import (
    ConnectionConfig,
    HealthConfig,
    SubscriptionConfig,
    TelemetryConfig,
    WatcherConfig,
)
from marketwatch.live.connection import ConnectionManager, next_state
from marketwatch.live.errors import (
    ConfigurationError,
    ConnectionError,
    DisconnectBudgetExceeded,
    InvalidTransitionError,
    LiveFeedError,
    MessageParseError,
)
from marketwatch.live.health import HealthAction, HealthMonitor
from marketwatch.live.planner import plan_subscription
from marketwatch.live.policy import ReconnectPolicy, backoff_delay_ms
from marketwatch.live.reporter import TelemetryReporter
from marketwatch.live.types import (
    ConnectionStats,
    ManagerState,
    PlanMode,
    Session,
    SessionEvent,
    SessionState,
    StatusReport,
    SubscriptionPlan,
    TickerSnapshot,
)
from marketwatch.live.watcher import MarketWatcher

__all__ = [
    # Main entry point
    "MarketWatcher",
    "WatcherConfig",
    # Components
    "ConnectionManager",
    "HealthMonitor",
    "HealthAction",
    "ReconnectPolicy",
    "SnapshotCache",
    "TelemetryReporter",
    "plan_subscription",
    "backoff_delay_ms",
    "next_state",
    # Configs
    "SubscriptionConfig",
    "ConnectionConfig",
    "HealthConfig",
    "TelemetryConfig",
    # Types
    "ConnectionStats",
    "ManagerState",
    "PlanMode",
    "Session",
    "SessionEvent",
    "SessionState",
    "StatusReport",
    "SubscriptionPlan",
    "TickerSnapshot",
    # Errors
    "LiveFeedError",
    "ConnectionError",
    "ConfigurationError",
    "DisconnectBudgetExceeded",
    "InvalidTransitionError",
    "MessageParseError",
]
