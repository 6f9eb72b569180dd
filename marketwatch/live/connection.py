"""
WebSocket Connection Manager for the market watcher.

Handles the streaming session lifecycle including:
- Explicit session state machine (idle -> connecting -> open -> closed)
- Heartbeat handling: every server PING is answered with a PONG echoing the
  payload before the next frame is read
- Frame decoding into the snapshot cache
- Reconnect scheduling through the ReconnectPolicy, bounded by the
  cumulative disconnect budget
- Forced termination ("hard reconnect") used by the health monitor and
  the hard reset timer
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Union

import aiohttp

from marketwatch.live.cache import SnapshotCache
from marketwatch.live.config import ConnectionConfig
from marketwatch.live.errors import (
    ConnectionError,
    DisconnectBudgetExceeded,
    InvalidTransitionError,
    MessageParseError,
)
from marketwatch.live.frames import decode_frame
from marketwatch.live.policy import ReconnectPolicy
from marketwatch.live.transport import AiohttpConnector, Connector, Transport
from marketwatch.live.types import (
    ConnectionStats,
    Session,
    SessionEvent,
    SessionState,
    SubscriptionPlan,
)

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.IDLE, SessionEvent.CONNECT): SessionState.CONNECTING,
    (SessionState.CLOSED, SessionEvent.CONNECT): SessionState.CONNECTING,
    (SessionState.CONNECTING, SessionEvent.OPENED): SessionState.OPEN,
    (SessionState.CONNECTING, SessionEvent.CLOSED): SessionState.CLOSED,
    (SessionState.OPEN, SessionEvent.CLOSED): SessionState.CLOSED,
    (SessionState.IDLE, SessionEvent.FATAL): SessionState.CLOSED,
    (SessionState.CONNECTING, SessionEvent.FATAL): SessionState.CLOSED,
    (SessionState.OPEN, SessionEvent.FATAL): SessionState.CLOSED,
    (SessionState.CLOSED, SessionEvent.FATAL): SessionState.CLOSED,
}

# Transport failures that count as an ordinary (transient) close
_TRANSIENT_ERRORS = (ConnectionError, aiohttp.ClientError, asyncio.TimeoutError, OSError)


def next_state(state: SessionState, event: SessionEvent) -> SessionState:
    """
    Transition function of the session state machine.

    Raises:
        InvalidTransitionError: If the event is not valid in ``state``
    """
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Event {event.value} is not valid in state {state.value}",
            state=state.value,
            event=event.value,
            component="ConnectionManager",
        ) from None


class ConnectionManager:
    """
    Owns one streaming session at a time and replaces it on every reconnect.

    At most one session is connecting or open. A reconnect is only started
    from the close handling of the previous session, never alongside it.

    Usage:
        manager = ConnectionManager(
            plan=plan_subscription(["BTCUSDT", "ETHUSDT"]),
            config=ConnectionConfig(),
            cache=SnapshotCache(),
            on_forfeit=lambda err: ...,
        )
        manager.connect()
        # ... later ...
        await manager.close()
    """

    def __init__(
        self,
        plan: SubscriptionPlan,
        config: ConnectionConfig,
        cache: SnapshotCache,
        policy: Optional[ReconnectPolicy] = None,
        connector: Optional[Connector] = None,
        on_forfeit: Optional[Callable[[DisconnectBudgetExceeded], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "connection",
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            plan: Subscription plan providing the target URL
            config: Connection configuration
            cache: Snapshot cache receiving decoded tickers
            policy: Reconnect policy, built from ``config`` if omitted
            connector: Async callable opening a transport for a URL
            on_forfeit: Called once when the disconnect budget is exhausted
            clock: Monotonic clock in seconds
            name: Name for logging purposes
        """
        self._plan = plan
        self._config = config
        self._cache = cache
        self._policy = policy or ReconnectPolicy(config)
        self._connector: Connector = connector or AiohttpConnector()
        self._on_forfeit = on_forfeit
        self._clock = clock
        self._name = name

        self._stats = ConnectionStats()
        self._session: Optional[Session] = None
        self._transport: Optional[Transport] = None
        self._session_seq = 0

        # Tasks
        self._session_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None

        self._shutting_down = False
        self._forfeit: Optional[DisconnectBudgetExceeded] = None

    @property
    def state(self) -> SessionState:
        """State of the current session (IDLE before the first connect)."""
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def stats(self) -> ConnectionStats:
        return self._stats

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    @property
    def plan(self) -> SubscriptionPlan:
        return self._plan

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def forfeit(self) -> Optional[DisconnectBudgetExceeded]:
        """Set once the disconnect budget has been exhausted."""
        return self._forfeit

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # --- Lifecycle ---

    def connect(self) -> Optional[Session]:
        """
        Open a new session and start its receive task.

        Returns the new session, the already active one, or None when
        shutting down or forfeit.
        """
        if self._shutting_down or self._forfeit is not None:
            logger.debug(f"[{self._name}] Connect suppressed (shutting down or forfeit)")
            return None
        if self._session is not None and self._session.is_active:
            logger.warning(f"[{self._name}] Already connected or connecting")
            return self._session

        session = self._begin_session()
        self._session_task = asyncio.create_task(
            self._run_session(session),
            name=f"{self._name}_session_{session.session_id}",
        )
        return session

    def _begin_session(self) -> Session:
        """Create the next session and apply the CONNECT transition."""
        state = next_state(self.state, SessionEvent.CONNECT)
        self._session_seq += 1
        self._stats.connects += 1
        session = Session(
            session_id=self._session_seq,
            url=self._plan.url,
            state=state,
            started_at=self._clock(),
        )
        self._session = session
        logger.info(
            f"[{self._name}] Opening WebSocket (#{self._stats.connects}) url={session.url}"
        )
        return session

    async def _run_session(self, session: Session) -> None:
        """Connect, pump frames until the transport ends, then close."""
        event = SessionEvent.CLOSED
        transport: Optional[Transport] = None
        try:
            transport = await asyncio.wait_for(
                self._connector(session.url),
                timeout=self._config.connect_timeout_s,
            )
            self._transport = transport
            if self._shutting_down:
                # close() ran while connecting; released below
                return
            self.handle_open(session)
            await self._pump(session, transport)

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Session #{session.session_id} terminated")
        except _TRANSIENT_ERRORS as e:
            logger.warning(f"[{self._name}] WebSocket error: {e}")
        except Exception:
            logger.exception(f"[{self._name}] Fatal error in session #{session.session_id}")
            event = SessionEvent.FATAL
        finally:
            # close() detaches the transport it releases itself
            owned = transport is not None and self._transport is transport
            if owned:
                self._transport = None
            # Mark closed before teardown; terminate() ignores closed sessions
            self.handle_close(session, event)
            if owned and transport is not None:
                await self._release(transport, abort=session.terminated)

    async def _pump(self, session: Session, transport: Transport) -> None:
        """Receive loop for one session."""
        while True:
            msg = await transport.receive()

            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self.handle_message(session, msg.data)

            elif msg.type == aiohttp.WSMsgType.PING:
                await self.handle_ping(session, msg.data or b"")

            elif msg.type == aiohttp.WSMsgType.PONG:
                self.handle_pong(session)

            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                logger.info(f"[{self._name}] Server closed connection")
                return

            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"[{self._name}] WebSocket error frame: {msg.data}")
                return

    async def _release(self, transport: Transport, abort: bool) -> None:
        """Best-effort transport teardown; failures are suppressed."""
        try:
            if abort:
                await transport.abort()
            else:
                await transport.close()
        except Exception as e:
            logger.debug(f"[{self._name}] Error releasing transport (ignored): {e}")

    # --- Session events ---

    def _is_current(self, session: Session) -> bool:
        return session is self._session

    def handle_open(self, session: Session) -> None:
        """CONNECTING -> OPEN: reset the attempt counter and stamp message time."""
        if not self._is_current(session):
            return
        session.state = next_state(session.state, SessionEvent.OPENED)
        self._stats.reconnect_attempts = 0
        session.last_message_at = self._clock()
        logger.info(f"[{self._name}] WebSocket open (session #{session.session_id}).")

    def handle_message(self, session: Session, raw: Union[str, bytes]) -> None:
        """Stamp message time and route decoded tickers into the cache."""
        if not self._is_current(session):
            return
        session.last_message_at = self._clock()
        self._stats.messages_received += 1
        try:
            snapshots = decode_frame(raw)
        except MessageParseError as e:
            self._stats.parse_errors += 1
            logger.debug(f"[{self._name}] Dropping frame: {e}")
            return
        for snapshot in snapshots:
            self._cache.update(snapshot)

    async def handle_ping(self, session: Session, payload: bytes) -> None:
        """Reply to a server PING with an identical PONG before reading on."""
        if not self._is_current(session):
            return
        session.last_ping_at = self._clock()
        transport = self._transport
        if transport is None:
            return
        try:
            await transport.pong(payload)
            session.last_pong_at = self._clock()
        except Exception as e:
            logger.warning(f"[{self._name}] Pong failed: {e}")

    def handle_pong(self, session: Session) -> None:
        """PONG in reply to our own heartbeat."""
        if not self._is_current(session):
            return
        session.last_pong_at = self._clock()

    def handle_close(self, session: Session, event: SessionEvent = SessionEvent.CLOSED) -> None:
        """
        OPEN/CONNECTING -> CLOSED: count the disconnect and decide what follows.

        Either nothing (shutting down), forfeit (budget exhausted), or a
        delayed reconnect.
        """
        if not self._is_current(session) or session.state == SessionState.CLOSED:
            return
        session.state = next_state(session.state, event)
        self._stats.disconnects += 1
        logger.warning(
            f"[{self._name}] WebSocket closed. disconnects={self._stats.disconnects}"
        )

        if self._shutting_down:
            return

        try:
            self._policy.check(self._stats.disconnects)
        except DisconnectBudgetExceeded as e:
            self._forfeit = e
            logger.error(f"[{self._name}] PreProtection From Ban: {e}")
            if self._on_forfeit:
                self._on_forfeit(e)
            return

        self._schedule_reconnect()

    # --- Reconnect ---

    def _schedule_reconnect(self) -> None:
        self._stats.reconnect_attempts += 1
        attempt = self._stats.reconnect_attempts
        delay_s = self._policy.next_delay_s(attempt)
        logger.info(f"[{self._name}] Reconnect attempt #{attempt} in {delay_s * 1000:.0f}ms.")
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay_s), name=f"{self._name}_reconnect"
        )

    async def _reconnect_after(self, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        self._reconnect_task = None
        if not self._shutting_down:
            self.connect()

    def terminate(self, reason: str = "") -> bool:
        """
        Force a reconnect by abruptly dropping the current transport.

        The resulting close event drives the normal reconnect path. Before
        the first session this simply connects. Returns True if an action
        was taken.
        """
        if self._shutting_down or self._forfeit is not None:
            return False

        session = self._session
        if session is None:
            return self.connect() is not None
        if not session.is_active or session.terminated:
            # Already closing, or closed with a reconnect pending
            return False

        logger.warning(
            f"[{self._name}] Terminating session #{session.session_id}"
            + (f": {reason}" if reason else "")
        )
        session.terminated = True
        if self._session_task is not None and not self._session_task.done():
            self._session_task.cancel()
        return True

    async def send_heartbeat(self, payload: bytes = b"") -> bool:
        """Send an unsolicited PING on the open session."""
        transport = self._transport
        if not self.is_open or transport is None:
            return False
        try:
            await transport.ping(payload)
            return True
        except Exception as e:
            logger.warning(f"[{self._name}] Ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close the active session gracefully. No reconnect follows."""
        logger.info(f"[{self._name}] Closing connection")
        self._shutting_down = True

        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        transport = self._transport
        self._transport = None
        if transport is not None:
            await self._release(transport, abort=False)

        task = self._session_task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=self._config.connect_timeout_s)
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._session_task = None
        logger.info(f"[{self._name}] Connection closed")
