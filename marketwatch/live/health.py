"""
Health Monitor for the streaming session.

Watches heartbeat recency, independent of data traffic:
- Sends an unsolicited (empty) PING when the server has been silent for a while
- Forces a reconnect when the server's periodic PING is overdue, even if the
  transport itself reports no error

Checks run on a coarse tick, so trigger timing has up to one tick of slack.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Optional

from marketwatch.live.config import HealthConfig
from marketwatch.live.connection import ConnectionManager
from marketwatch.live.types import SessionState

logger = logging.getLogger(__name__)


class HealthAction(str, Enum):
    """Outcome of a single health check."""

    NONE = "none"
    PING = "ping"
    TERMINATE = "terminate"


class HealthMonitor:
    """
    Heartbeat watchdog for a ConnectionManager.

    Responsibilities:
    - Measure silence since the last server PING (or since the session
      started, if none has been seen yet)
    - Prompt the server with at most one unsolicited PING per tick
    - Invoke the connection's forced termination once the grace window passes
    """

    def __init__(
        self,
        config: HealthConfig,
        connection: ConnectionManager,
        clock: Callable[[], float] = time.monotonic,
        name: str = "health",
    ) -> None:
        """
        Initialize the health monitor.

        Args:
            config: Health monitoring configuration
            connection: Connection manager to watch and heal
            clock: Monotonic clock in seconds (same source as the connection's)
            name: Name for logging purposes
        """
        self._config = config
        self._connection = connection
        self._clock = clock
        self._name = name

        self._checks = 0
        self._pings_sent = 0
        self._terminations = 0

    @property
    def pings_sent(self) -> int:
        return self._pings_sent

    @property
    def terminations(self) -> int:
        return self._terminations

    def silence_s(self) -> Optional[float]:
        """Seconds since the last server PING, or since the session started."""
        session = self._connection.session
        if session is None:
            return None
        reference = session.last_ping_at if session.last_ping_at is not None else session.started_at
        if reference is None:
            return None
        return self._clock() - reference

    async def check(self) -> HealthAction:
        """Run one health check tick."""
        self._checks += 1
        if self._connection.shutting_down:
            return HealthAction.NONE

        session = self._connection.session
        silence = self.silence_s()
        if session is None or silence is None or not session.is_active:
            return HealthAction.NONE

        if silence > self._config.grace_no_ping_s:
            logger.warning(
                f"[{self._name}] No ping from server for {silence:.1f}s "
                f"(grace {self._config.grace_no_ping_s:.0f}s). Reconnecting."
            )
            if self._connection.terminate("heartbeat grace window exceeded"):
                self._terminations += 1
                return HealthAction.TERMINATE
            return HealthAction.NONE

        if silence > self._config.unsolicited_ping_after_s and session.state == SessionState.OPEN:
            if await self._connection.send_heartbeat(b""):
                self._pings_sent += 1
                logger.debug(f"[{self._name}] Sent unsolicited ping after {silence:.1f}s silence")
                return HealthAction.PING

        return HealthAction.NONE
