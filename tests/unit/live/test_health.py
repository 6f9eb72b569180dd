"""
Unit tests for HealthMonitor.
"""

import pytest

from marketwatch.live.cache import SnapshotCache
from marketwatch.live.config import ConnectionConfig, HealthConfig
from marketwatch.live.connection import ConnectionManager
from marketwatch.live.health import HealthAction, HealthMonitor


class TestHealthMonitor:
    """Tests for HealthMonitor."""

    @pytest.fixture
    def health_config(self) -> HealthConfig:
        """Create test health config."""
        return HealthConfig(
            check_interval_s=10.0,
            unsolicited_ping_after_s=50.0,
            grace_no_ping_s=75.0,
        )

    @pytest.fixture
    def manager(self, plan, connector, clock) -> ConnectionManager:
        return ConnectionManager(
            plan=plan,
            config=ConnectionConfig(base_delay_ms=1, max_delay_ms=1, jitter_ms=0),
            cache=SnapshotCache(),
            connector=connector,
            clock=clock,
        )

    @pytest.fixture
    def monitor(self, health_config, manager, clock) -> HealthMonitor:
        """Create fresh health monitor for each test."""
        return HealthMonitor(config=health_config, connection=manager, clock=clock)

    @pytest.mark.asyncio
    async def test_no_session_does_nothing(self, monitor: HealthMonitor) -> None:
        assert monitor.silence_s() is None
        assert await monitor.check() == HealthAction.NONE

    @pytest.mark.asyncio
    async def test_recent_ping_is_healthy(
        self, monitor: HealthMonitor, manager, connector, clock, wait_until
    ) -> None:
        """Test that a fresh server PING keeps the session quiet."""
        manager.connect()
        await wait_until(lambda: manager.is_open)
        clock.advance(100)
        connector.latest.feed_ping(b"x")
        await wait_until(lambda: connector.latest.pongs() != [])
        clock.advance(10)

        assert monitor.silence_s() == 10
        assert await monitor.check() == HealthAction.NONE
        assert connector.latest.pings() == []

        await manager.close()

    @pytest.mark.asyncio
    async def test_silence_measured_from_session_start(
        self, monitor: HealthMonitor, manager, clock, wait_until
    ) -> None:
        """Test that a brand new session is not treated as stalled."""
        manager.connect()
        await wait_until(lambda: manager.is_open)

        assert monitor.silence_s() == 0
        assert await monitor.check() == HealthAction.NONE

        await manager.close()

    @pytest.mark.asyncio
    async def test_unsolicited_ping_after_silence(
        self, monitor: HealthMonitor, manager, connector, clock, wait_until
    ) -> None:
        """Test an empty PING is sent after 50s without a server PING."""
        manager.connect()
        await wait_until(lambda: manager.is_open)
        clock.advance(55)

        assert await monitor.check() == HealthAction.PING
        assert connector.latest.pings() == [b""]
        assert monitor.pings_sent == 1
        assert manager.is_open

        await manager.close()

    @pytest.mark.asyncio
    async def test_grace_exceeded_terminates_once(
        self, monitor: HealthMonitor, manager, connector, clock, wait_until
    ) -> None:
        """Test that 80s of silence forces exactly one reconnect per tick."""
        manager.connect()
        await wait_until(lambda: manager.is_open)
        first = manager.session
        clock.advance(80)

        assert await monitor.check() == HealthAction.TERMINATE
        assert monitor.terminations == 1
        # Not pinged: the session is already beyond saving
        assert connector.transports[0].pings() == []

        await wait_until(lambda: manager.is_open and manager.session is not first)

        # The replacement session starts a fresh silence window
        assert await monitor.check() == HealthAction.NONE
        assert monitor.terminations == 1
        assert manager.stats.disconnects == 1
        assert connector.transports[0].aborted is True

        await manager.close()

    @pytest.mark.asyncio
    async def test_repeated_check_while_terminating(
        self, monitor: HealthMonitor, manager, clock, wait_until
    ) -> None:
        """Test a second tick before the close lands takes no further action."""
        manager.connect()
        await wait_until(lambda: manager.is_open)
        clock.advance(80)

        assert await monitor.check() == HealthAction.TERMINATE
        assert await monitor.check() == HealthAction.NONE
        assert monitor.terminations == 1

        await manager.close()

    @pytest.mark.asyncio
    async def test_no_action_while_shutting_down(
        self, monitor: HealthMonitor, manager, clock, wait_until
    ) -> None:
        manager.connect()
        await wait_until(lambda: manager.is_open)
        await manager.close()
        clock.advance(500)

        assert await monitor.check() == HealthAction.NONE
        assert monitor.terminations == 0
