"""
Shared fakes for the live watcher tests.

FakeTransport feeds scripted frames to the connection manager and records
what the manager sends back. ManualClock replaces time.monotonic so
heartbeat ages can be advanced without sleeping.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import pytest

from marketwatch.live.planner import plan_subscription
from marketwatch.live.types import SubscriptionPlan


@dataclass
class FakeMessage:
    type: aiohttp.WSMsgType
    data: Any = None


class FakeTransport:
    """In-memory transport driven by a queue of frames."""

    def __init__(self, on_pong: Optional[Callable[[bytes], None]] = None) -> None:
        self.inbox: asyncio.Queue[FakeMessage] = asyncio.Queue()
        self.sent: list[tuple[str, bytes]] = []
        self.closed = False
        self.aborted = False
        self._on_pong = on_pong

    # --- Scripting ---

    def feed_text(self, text: str) -> None:
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def feed_ping(self, payload: bytes = b"") -> None:
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.PING, payload))

    def feed_pong(self, payload: bytes = b"") -> None:
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.PONG, payload))

    def feed_close(self) -> None:
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSE, 1000))

    def pongs(self) -> list[bytes]:
        return [payload for kind, payload in self.sent if kind == "pong"]

    def pings(self) -> list[bytes]:
        return [payload for kind, payload in self.sent if kind == "ping"]

    # --- Transport protocol ---

    async def receive(self) -> FakeMessage:
        return await self.inbox.get()

    async def ping(self, payload: bytes = b"") -> None:
        self.sent.append(("ping", payload))

    async def pong(self, payload: bytes = b"") -> None:
        if self._on_pong is not None:
            self._on_pong(payload)
        self.sent.append(("pong", payload))

    async def close(self) -> None:
        self.closed = True
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED))

    async def abort(self) -> None:
        self.aborted = True
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED))


class FakeConnector:
    """Connector returning a fresh FakeTransport per call, or raising ``fail_with``."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.fail_with: Optional[BaseException] = None
        self.fail_times: Optional[int] = None  # None: fail on every call
        self.on_pong: Optional[Callable[[bytes], None]] = None

    @property
    def calls(self) -> int:
        return len(self.urls)

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.fail_with is not None and (self.fail_times is None or self.fail_times > 0):
            if self.fail_times is not None:
                self.fail_times -= 1
            raise self.fail_with
        transport = FakeTransport(on_pong=self.on_pong)
        self.transports.append(transport)
        return transport


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


def ticker_json(symbol: str, close: str = "100.0") -> str:
    return (
        '{"e":"24hrMiniTicker","E":1672515782136,'
        f'"s":"{symbol}","c":"{close}","o":"99.0","h":"101.0","l":"98.0",'
        '"v":"10.5","q":"1050.0"}'
    )


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the running loop until it holds."""
    return _wait_until


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def plan() -> SubscriptionPlan:
    return plan_subscription(["BTCUSDT", "ETHUSDT"])


@pytest.fixture
def ticker_frame() -> Callable[..., str]:
    """Build a raw miniTicker frame for a symbol."""
    return ticker_json
