"""WebSocket implementation of the Connection interface."""

import asyncio
import logging
from collections.abc import Callable

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from phonerelay.interfaces.connection import Connection

logger = logging.getLogger(__name__)


class WebSocketConnection(Connection):
    """Adapts a websockets server connection to the relay's Connection.

    Liveness probes use WebSocket ping frames; the client library answers
    them with pongs, so peers need no application-level heartbeat.
    """

    def __init__(self, websocket: ServerConnection) -> None:
        """Initialize the adapter.

        Args:
            websocket: An accepted websockets server connection
        """
        self._ws = websocket
        self._id = f"{websocket.id.hex[:8]}@{self._format_address(websocket.remote_address)}"

    @staticmethod
    def _format_address(address: object) -> str:
        if isinstance(address, tuple) and len(address) >= 2:
            return f"{address[0]}:{address[1]}"
        return str(address)

    @property
    def connection_id(self) -> str:
        return self._id

    @property
    def websocket(self) -> ServerConnection:
        return self._ws

    async def send(self, text: str) -> bool:
        try:
            await self._ws.send(text)
            return True
        except ConnectionClosed as e:
            logger.debug(f"Send to {self._id} failed: {e}")
            return False

    async def close(self) -> None:
        await self._ws.close()

    def terminate(self) -> None:
        self._ws.transport.abort()

    async def ping(self, on_pong: Callable[[], None]) -> bool:
        try:
            pong_waiter = await self._ws.ping()
        except ConnectionClosed:
            return False

        def _on_done(future: asyncio.Future) -> None:
            if future.cancelled() or future.exception() is not None:
                return
            on_pong()

        pong_waiter.add_done_callback(_on_done)
        return True

    @property
    def is_open(self) -> bool:
        return self._ws.state is State.OPEN
