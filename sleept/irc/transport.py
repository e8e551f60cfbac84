"""WebSocket transport carrying CRLF-delimited protocol lines."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException

from ..errors import ConnectionFailed, SendFailed


class Transport(Protocol):
    """Bidirectional line stream used by the session manager."""

    async def send_line(self, line: str) -> None:
        """Write one protocol line (terminator appended by the transport)."""
        ...

    def lines(self) -> AsyncIterator[str]:
        """Yield inbound lines until the peer closes the stream."""
        ...

    async def close(self) -> None:
        """Close the stream. Must be idempotent."""
        ...


class WebSocketTransport:
    """Transport over the Twitch IRC WebSocket gateway.

    Attributes:
        url (str): Gateway URL.
        ws (ClientConnection | None): Active WebSocket connection.
    """

    def __init__(self, url: str, ws: ClientConnection) -> None:
        self.url = url
        self.ws: ClientConnection | None = ws

    @classmethod
    async def open(cls, url: str) -> WebSocketTransport:
        logging.debug(f"🔌 Connecting to WebSocket at {url}")
        try:
            ws = await connect(url, ping_interval=None)
        except (OSError, InvalidURI, WebSocketException) as e:
            raise ConnectionFailed(
                f"WebSocket connection failed: {str(e)}", data={"url": url}
            ) from e
        logging.debug("🔌 WebSocket connected")
        return cls(url, ws)

    async def send_line(self, line: str) -> None:
        if self.ws is None:
            raise SendFailed("WebSocket not connected")
        try:
            await self.ws.send(f"{line}\r\n")
        except (ConnectionClosed, OSError) as e:
            raise SendFailed(f"WebSocket send failed: {str(e)}") from e

    async def lines(self) -> AsyncIterator[str]:
        ws = self.ws
        if ws is None:
            return
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                # One WebSocket message may carry several protocol lines
                for line in message.split("\r\n"):
                    if line:
                        yield line
        except ConnectionClosed as e:
            logging.debug(f"🔌 WebSocket closed: code={e.rcvd.code if e.rcvd else None}")

    async def close(self) -> None:
        ws, self.ws = self.ws, None
        if ws is None:
            return
        try:
            await ws.close(code=1000)
        except (ConnectionClosed, OSError) as e:
            logging.warning(f"⚠️ WebSocket close error: {str(e)}")
