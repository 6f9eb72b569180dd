"""
Telemetry Reporter: periodic, read-only status output.

Reports connection counters, cache size and heartbeat ages, and optionally a
table of the cached snapshots sorted by symbol. Never mutates watcher state.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable, Optional, Sequence

from marketwatch.live.config import TelemetryConfig
from marketwatch.live.connection import ConnectionManager
from marketwatch.live.types import StatusReport, TickerSnapshot
from marketwatch.ports.telemetry import Telemetry

logger = logging.getLogger(__name__)

TABLE_HEADERS = ("SYMBOL", "LAST", "OPEN", "HIGH", "LOW", "VOLUME", "QUOTE")


def human_duration(seconds: float) -> str:
    """Render a duration as e.g. ``12h0m0s``."""
    s = int(seconds)
    return f"{s // 3600}h{(s % 3600) // 60}m{s % 60}s"


def _age(now: float, ts: Optional[float]) -> Optional[float]:
    return None if ts is None else max(0.0, now - ts)


def _fmt_age(age: Optional[float]) -> str:
    return "N/A" if age is None else f"{age:.1f}s"


def _fmt_num(value: Decimal) -> str:
    # As received, never in exponent notation
    return format(value, "f")


def render_table(snapshots: Sequence[TickerSnapshot]) -> str:
    """Fixed-width table, right aligned, two spaces between columns."""
    rows = [
        (
            s.symbol.upper(),
            _fmt_num(s.close),
            _fmt_num(s.open),
            _fmt_num(s.high),
            _fmt_num(s.low),
            _fmt_num(s.base_volume),
            _fmt_num(s.quote_volume),
        )
        for s in sorted(snapshots, key=lambda s: s.symbol.upper())
    ]
    widths = [
        max(len(h), *(len(r[i]) for r in rows)) if rows else len(h)
        for i, h in enumerate(TABLE_HEADERS)
    ]

    def line(values: Sequence[str]) -> str:
        return "  ".join(v.rjust(widths[i]) for i, v in enumerate(values))

    return "\n".join([line(TABLE_HEADERS), *(line(r) for r in rows)])


class TelemetryReporter:
    """
    Builds and emits StatusReports on each tick.

    Output goes to the module logger and, if configured, to a Telemetry sink
    as a ``watcher_status`` event.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        connection: ConnectionManager,
        telemetry: Optional[Telemetry] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "status",
    ) -> None:
        self._config = config
        self._connection = connection
        self._telemetry = telemetry
        self._clock = clock
        self._name = name
        self._reports = 0

    @property
    def reports(self) -> int:
        return self._reports

    def build_report(self) -> StatusReport:
        """Snapshot the current counters and heartbeat ages."""
        now = self._clock()
        conn = self._connection
        stats = conn.stats
        session = conn.session
        return StatusReport(
            symbols=len(conn.plan.symbols),
            data_entries=len(conn.cache),
            reconnect_attempts=stats.reconnect_attempts,
            connects=stats.connects,
            disconnects=stats.disconnects,
            session_state=session.state if session else None,
            last_message_age_s=_age(now, session.last_message_at) if session else None,
            last_ping_age_s=_age(now, session.last_ping_at) if session else None,
            last_pong_age_s=_age(now, session.last_pong_at) if session else None,
            snapshots=conn.cache.list_all() if self._config.display_full else [],
        )

    @staticmethod
    def format_status(report: StatusReport) -> str:
        return (
            f"Status: symbols={report.symbols} dataEntries={report.data_entries} "
            f"reconnectAttempts={report.reconnect_attempts} connects={report.connects} "
            f"disconnects={report.disconnects} "
            f"lastMsgAge={_fmt_age(report.last_message_age_s)} "
            f"lastPingAge={_fmt_age(report.last_ping_age_s)} "
            f"lastPongAge={_fmt_age(report.last_pong_age_s)}"
        )

    def report(self) -> StatusReport:
        """Run one reporting tick."""
        report = self.build_report()
        self._reports += 1

        logger.info(f"[{self._name}] {self.format_status(report)}")
        if report.snapshots:
            logger.info(f"[{self._name}] Snapshots:\n{render_table(report.snapshots)}")

        if self._telemetry is not None:
            try:
                self._telemetry.log("watcher_status", **report.to_fields())
            except OSError as e:
                logger.warning(f"[{self._name}] Failed to write telemetry: {e}")

        return report
