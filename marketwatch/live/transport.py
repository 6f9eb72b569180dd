"""
WebSocket transport for a single streaming session.

Each session gets its own aiohttp ClientSession so the connection can be
dropped without a close handshake (``abort``) when the watcher forces a
reconnect. Control frames are not answered automatically: the connection
manager sees every PING/PONG and replies itself.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

import aiohttp

from marketwatch.live.errors import ConnectionError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the connection manager needs from an open websocket."""

    async def receive(self) -> aiohttp.WSMessage: ...

    async def ping(self, payload: bytes = b"") -> None: ...

    async def pong(self, payload: bytes = b"") -> None: ...

    async def close(self) -> None: ...

    async def abort(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]


class AiohttpTransport:
    """Transport backed by aiohttp's client websocket."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        ws: aiohttp.ClientWebSocketResponse,
    ) -> None:
        self._session = session
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def receive(self) -> aiohttp.WSMessage:
        return await self._ws.receive()

    async def ping(self, payload: bytes = b"") -> None:
        await self._ws.ping(payload)

    async def pong(self, payload: bytes = b"") -> None:
        await self._ws.pong(payload)

    async def close(self) -> None:
        """Close gracefully (close handshake), then release the HTTP session."""
        try:
            if not self._ws.closed:
                await self._ws.close()
        finally:
            await self._session.close()

    async def abort(self) -> None:
        """Drop the connection without a close handshake."""
        await self._session.close()


class AiohttpConnector:
    """
    Opens aiohttp websocket transports.

    Usage:
        connector = AiohttpConnector()
        transport = await connector("wss://data-stream.binance.vision/stream?streams=...")
    """

    async def __call__(self, url: str) -> AiohttpTransport:
        """
        Raises:
            ConnectionError: If the handshake fails
        """
        session = aiohttp.ClientSession()
        try:
            ws = await session.ws_connect(url, autoping=False, heartbeat=None)
        except aiohttp.ClientError as e:
            await session.close()
            raise ConnectionError(
                f"WebSocket handshake failed: {e}",
                url=url,
                component="AiohttpConnector",
            ) from e
        except BaseException:
            await session.close()
            raise
        logger.debug(f"WebSocket handshake completed for {url}")
        return AiohttpTransport(session, ws)
