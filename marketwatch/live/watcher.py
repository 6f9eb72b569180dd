"""
Market Watcher - top-level lifecycle orchestration.

Coordinates all watcher components:
- ConnectionManager for the streaming session
- HealthMonitor for heartbeat supervision
- TelemetryReporter for periodic status output
- A hard reset timer that forces a reconnect purely on elapsed time
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from typing import Callable, Optional

from marketwatch.adapters.telemetry.jsonl import JsonlTelemetry
from marketwatch.live.cache import SnapshotCache
from marketwatch.live.config import WatcherConfig
from marketwatch.live.connection import ConnectionManager
from marketwatch.live.errors import DisconnectBudgetExceeded
from marketwatch.live.health import HealthMonitor
from marketwatch.live.planner import plan_from_config
from marketwatch.live.policy import ReconnectPolicy
from marketwatch.live.reporter import TelemetryReporter, human_duration
from marketwatch.live.transport import Connector
from marketwatch.live.types import (
    ConnectionStats,
    ManagerState,
    StatusReport,
    SubscriptionPlan,
    TickerSnapshot,
)
from marketwatch.ports.telemetry import Telemetry

logger = logging.getLogger(__name__)


class MarketWatcher:
    """
    Top-level orchestration for the market data watcher.

    Manages the complete lifecycle:
    1. Subscription planning
    2. Timer scheduling (status, health, hard reset)
    3. First connection attempt
    4. Graceful shutdown, or forfeit once the disconnect budget is exhausted

    State Machine:
        [STOPPED] --start()--> [RUNNING] --stop()--> [STOPPING] --> [STOPPED]
                                   |
                              budget exhausted --> [STOPPING] --> [FORFEIT]

    The watcher never exits the process itself. ``wait()`` returns the exit
    code requested by ``stop()`` (1 on forfeit), or None when the caller
    opted out, and the host decides what to do with it.

    Usage:
        watcher = MarketWatcher(WatcherConfig())
        await watcher.start()
        exit_code = await watcher.wait()
    """

    def __init__(
        self,
        config: WatcherConfig,
        connector: Optional[Connector] = None,
        telemetry: Optional[Telemetry] = None,
        policy: Optional[ReconnectPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "watcher",
    ) -> None:
        """
        Initialize the market watcher.

        Args:
            config: Watcher configuration
            connector: Transport factory, aiohttp by default
            telemetry: Optional structured status sink; a JsonlTelemetry is
                created when ``config.telemetry.jsonl_path`` is set
            policy: Reconnect policy, built from ``config.connection`` if omitted
            clock: Monotonic clock in seconds shared by all components
            name: Name for logging purposes
        """
        self._config = config
        self._name = name

        self._plan = plan_from_config(config.subscription)
        self._cache = SnapshotCache()
        self._connection = ConnectionManager(
            plan=self._plan,
            config=config.connection,
            cache=self._cache,
            policy=policy,
            connector=connector,
            on_forfeit=self._on_forfeit,
            clock=clock,
            name=f"{name}_ws",
        )
        self._health = HealthMonitor(
            config=config.health,
            connection=self._connection,
            clock=clock,
            name=f"{name}_health",
        )
        if telemetry is None and config.telemetry.jsonl_path is not None:
            telemetry = JsonlTelemetry(config.telemetry.jsonl_path, component=name)
        self._reporter = TelemetryReporter(
            config=config.telemetry,
            connection=self._connection,
            telemetry=telemetry,
            clock=clock,
            name=f"{name}_status",
        )

        # State
        self._state = ManagerState.STOPPED
        self._shutting_down = False
        self._exit_code: Optional[int] = None

        # Timers
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._stop_task: Optional[asyncio.Task[None]] = None

        # Shutdown coordination
        self._done = asyncio.Event()

    @property
    def state(self) -> ManagerState:
        """Current watcher state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ManagerState.RUNNING

    @property
    def config(self) -> WatcherConfig:
        return self._config

    @property
    def plan(self) -> SubscriptionPlan:
        return self._plan

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def health(self) -> HealthMonitor:
        return self._health

    @property
    def reporter(self) -> TelemetryReporter:
        return self._reporter

    @property
    def stats(self) -> ConnectionStats:
        return self._connection.stats

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def forfeit(self) -> Optional[DisconnectBudgetExceeded]:
        return self._connection.forfeit

    @property
    def timers(self) -> dict[str, asyncio.Task[None]]:
        return dict(self._timers)

    # --- Read accessors ---

    def get(self, symbol: str) -> Optional[TickerSnapshot]:
        """Latest snapshot for a symbol."""
        return self._cache.get(symbol)

    def list_all(self) -> list[TickerSnapshot]:
        """All cached snapshots, sorted by symbol."""
        return self._cache.list_all()

    def status(self) -> StatusReport:
        """Current status without emitting it."""
        return self._reporter.build_report()

    # --- Lifecycle ---

    async def start(self) -> None:
        """
        Start timers and the first connection attempt.

        No-op if a session already exists or shutdown has begun.
        """
        if self._shutting_down:
            logger.warning(f"[{self._name}] Cannot start after shutdown")
            return
        if self._connection.session is not None:
            return

        self._timers["telemetry"] = asyncio.create_task(
            self._telemetry_loop(), name=f"{self._name}_telemetry"
        )
        self._timers["health"] = asyncio.create_task(
            self._health_loop(), name=f"{self._name}_health"
        )
        self._timers["hard_reset"] = asyncio.create_task(
            self._hard_reset_loop(), name=f"{self._name}_hard_reset"
        )

        self._connection.connect()
        self._state = ManagerState.RUNNING

        logger.info(
            f"[{self._name}] Started with {len(self._config.subscription.symbols)} requested "
            f"symbols (capped at {self._config.subscription.max_streams}, "
            f"mode={self._plan.mode.value}). "
            f"Hard reset every {human_duration(self._config.hard_reset_interval_s)}, "
            f"server ping expected every {self._config.health.expected_ping_interval_s:.0f}s."
        )

    async def stop(self, exit_code: Optional[int] = 0) -> None:
        """
        Stop the watcher. Idempotent.

        Args:
            exit_code: Exit code reported through ``wait()``; None opts out of
                requesting a process exit (embedded use)
        """
        if self._shutting_down:
            return
        self._shutting_down = True
        self._state = ManagerState.STOPPING
        self._exit_code = exit_code

        await self._cancel_timers()

        try:
            await self._connection.close()
        except Exception as e:
            logger.debug(f"[{self._name}] Error closing connection (ignored): {e}")

        stats = self._connection.stats
        logger.info(
            f"[{self._name}] Stopping. connects={stats.connects} "
            f"disconnects={stats.disconnects} dataEntries={len(self._cache)}"
        )

        self._state = (
            ManagerState.FORFEIT if self._connection.forfeit is not None else ManagerState.STOPPED
        )
        self._done.set()

    async def wait(self) -> Optional[int]:
        """Block until the watcher has stopped; return the requested exit code."""
        await self._done.wait()
        return self._exit_code

    async def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        timers = [t for t in self._timers.values() if t is not current and not t.done()]
        for task in timers:
            task.cancel()
        for task in timers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timers.clear()

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Map SIGINT/SIGTERM to a graceful ``stop(0)``."""
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"[{self._name}] Signal handlers unavailable for {sig.name}")

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"[{self._name}] Received {sig.name}, shutting down")
        self._request_stop(0)

    def _on_forfeit(self, error: DisconnectBudgetExceeded) -> None:
        logger.error(f"[{self._name}] Disconnect budget exhausted, stopping: {error}")
        self._request_stop(1)

    def _request_stop(self, exit_code: Optional[int]) -> None:
        if self._shutting_down or self._stop_task is not None:
            return
        self._stop_task = asyncio.create_task(self.stop(exit_code), name=f"{self._name}_stop")

    # --- Timers ---

    async def _telemetry_loop(self) -> None:
        try:
            while not self._shutting_down:
                await asyncio.sleep(self._config.telemetry.interval_s)
                if self._shutting_down:
                    break
                try:
                    self._reporter.report()
                except Exception as e:
                    logger.error(f"[{self._name}] Status report failed: {e}")
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Telemetry loop cancelled")
            raise

    async def _health_loop(self) -> None:
        try:
            while not self._shutting_down:
                await asyncio.sleep(self._config.health.check_interval_s)
                if self._shutting_down:
                    break
                try:
                    await self._health.check()
                except Exception as e:
                    logger.error(f"[{self._name}] Health check failed: {e}")
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Health loop cancelled")
            raise

    async def _hard_reset_loop(self) -> None:
        """One-shot reset timer, re-armed after each firing."""
        try:
            while not self._shutting_down:
                await asyncio.sleep(self._config.hard_reset_interval_s)
                if self._shutting_down:
                    break
                logger.info(
                    f"[{self._name}] {human_duration(self._config.hard_reset_interval_s)} "
                    "hard reset triggered."
                )
                self._connection.terminate("hard reset")
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Hard reset timer cancelled")
            raise
