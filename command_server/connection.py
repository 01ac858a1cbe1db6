"""
Client connection used by a Session.

The session only needs to receive frames, send frames and close; this module
adapts a Starlette/FastAPI WebSocket to that and turns every transport
failure into ConnectionClosed.
"""

from __future__ import annotations

from typing import Protocol, Union

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from logging_setup import get_logger, Component

logger = get_logger(Component.SERVER)


class ConnectionClosed(Exception):
    """The client went away or the transport failed."""


class Connection(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def receive(self) -> Union[bytes, str]:
        """Next frame: bytes for binary frames, str for text frames."""
        ...

    async def send_text(self, text: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...

    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        ...


class WebSocketConnection:
    """Connection over an accepted FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self._ws = websocket
        self._closed = False
        self._peer_gone = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and not self._peer_gone
            and self._ws.application_state == WebSocketState.CONNECTED
            and self._ws.client_state == WebSocketState.CONNECTED
        )

    async def receive(self) -> Union[bytes, str]:
        if self._closed or self._peer_gone:
            raise ConnectionClosed("connection is closed")
        try:
            message = await self._ws.receive()
        except Exception as e:
            self._peer_gone = True
            raise ConnectionClosed(f"receive failed: {e}") from e

        if message["type"] == "websocket.disconnect":
            self._peer_gone = True
            raise ConnectionClosed(f"client disconnected (code {message.get('code')})")
        if message.get("bytes") is not None:
            return message["bytes"]
        return message.get("text") or ""

    async def send_text(self, text: str) -> None:
        if not self.is_open:
            raise ConnectionClosed("connection is closed")
        try:
            await self._ws.send_text(text)
        except Exception as e:
            self._peer_gone = True
            raise ConnectionClosed(f"send failed: {e}") from e

    async def send_bytes(self, data: bytes) -> None:
        if not self.is_open:
            raise ConnectionClosed("connection is closed")
        try:
            await self._ws.send_bytes(data)
        except Exception as e:
            self._peer_gone = True
            raise ConnectionClosed(f"send failed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._peer_gone or self._ws.application_state != WebSocketState.CONNECTED:
            return
        try:
            await self._ws.close()
        except Exception as e:
            # Best-effort: the client may already be gone.
            logger.debug("WebSocket close failed", error=str(e), error_type=type(e).__name__)
