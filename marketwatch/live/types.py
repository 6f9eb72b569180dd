"""
Shared types, enums, and data structures for the live market watcher.

This module contains types that are used across multiple components
of the watcher: the session state machine vocabulary, the subscription
plan, ticker snapshots and connection counters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ManagerState(str, Enum):
    """State machine for the MarketWatcher."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"
    FORFEIT = "forfeit"  # Stopped after exhausting the disconnect budget


class SessionState(str, Enum):
    """State machine for a single streaming session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class SessionEvent(str, Enum):
    """Events that drive the session state machine."""

    CONNECT = "connect"
    OPENED = "opened"
    CLOSED = "closed"
    FATAL = "fatal"


class PlanMode(str, Enum):
    """How the symbol set is mapped onto venue streams."""

    MULTIPLEXED = "multiplexed"
    AGGREGATE_ALL = "aggregateAll"


@dataclass(frozen=True)
class SubscriptionPlan:
    """Concrete stream selection for one connection."""

    symbols: tuple[str, ...]
    mode: PlanMode
    url: str
    truncated: bool = False

    @property
    def stream_names(self) -> list[str]:
        """Stream names encoded in the URL."""
        if self.mode == PlanMode.AGGREGATE_ALL:
            return ["!miniTicker@arr"]
        return [f"{s}@miniTicker" for s in self.symbols]


class TickerSnapshot(BaseModel):
    """
    Latest mini ticker values for one symbol.

    Binance miniTicker format:
    {
        "e": "24hrMiniTicker",
        "E": 1672515782136,  // Event time
        "s": "BTCUSDT",      // Symbol
        "c": "16850.50",     // Close price
        "o": "16800.00",     // Open price
        "h": "16900.00",     // High price
        "l": "16700.00",     // Low price
        "v": "10000.5",      // Total traded base asset volume
        "q": "168000000.00"  // Total traded quote asset volume
    }
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    symbol: str = Field(alias="s")
    close: Decimal = Field(alias="c")
    open: Decimal = Field(alias="o")
    high: Decimal = Field(alias="h")
    low: Decimal = Field(alias="l")
    base_volume: Decimal = Field(alias="v")
    quote_volume: Decimal = Field(alias="q")

    def to_wire(self) -> dict[str, str]:
        """Serialize back to the venue's field abbreviations and decimal strings."""
        return {
            key: value if isinstance(value, str) else format(value, "f")
            for key, value in self.model_dump(by_alias=True).items()
        }


@dataclass
class ConnectionStats:
    """Cumulative connection counters for one watcher instance."""

    connects: int = 0
    disconnects: int = 0
    reconnect_attempts: int = 0  # Reset to zero on every successful open
    messages_received: int = 0
    parse_errors: int = 0


@dataclass
class Session:
    """
    One physical connection attempt.

    Replaced, never reused, on every reconnect. Timestamps are monotonic
    seconds as returned by the owning manager's clock.
    """

    session_id: int
    url: str
    state: SessionState = SessionState.IDLE
    started_at: Optional[float] = None
    terminated: bool = False  # Forced termination requested
    last_message_at: Optional[float] = None
    last_ping_at: Optional[float] = None
    last_pong_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        """Check if session is connecting or open."""
        return self.state in (SessionState.CONNECTING, SessionState.OPEN)


@dataclass
class StatusReport:
    """Read-only status snapshot produced on each telemetry tick."""

    symbols: int
    data_entries: int
    reconnect_attempts: int
    connects: int
    disconnects: int
    session_state: Optional[SessionState] = None
    last_message_age_s: Optional[float] = None
    last_ping_age_s: Optional[float] = None
    last_pong_age_s: Optional[float] = None
    snapshots: list[TickerSnapshot] = field(default_factory=list)

    def to_fields(self) -> dict[str, Any]:
        """Flatten into telemetry fields (snapshots excluded)."""
        return {
            "symbols": self.symbols,
            "data_entries": self.data_entries,
            "reconnect_attempts": self.reconnect_attempts,
            "connects": self.connects,
            "disconnects": self.disconnects,
            "session_state": self.session_state.value if self.session_state else None,
            "last_message_age_s": self.last_message_age_s,
            "last_ping_age_s": self.last_ping_age_s,
            "last_pong_age_s": self.last_pong_age_s,
        }
