"""Relay server - accepts WebSocket connections and wires them to the router."""

import asyncio
import logging

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosedError

from phonerelay.config import Config
from phonerelay.core.handle import ConnectionHandle
from phonerelay.core.liveness import LivenessMonitor
from phonerelay.core.message_router import MessageRouter
from phonerelay.core.registry import ProviderRegistry
from phonerelay.transport.websocket_transport import WebSocketConnection

logger = logging.getLogger(__name__)


class RelayServer:
    """Main relay server.

    Owns the provider registry, the router and the liveness monitor, and
    runs one handler task per WebSocket connection. A fault while handling
    one message is logged and never affects other connections.
    """

    def __init__(
        self,
        config: Config | None = None,
        registry: ProviderRegistry | None = None,
    ) -> None:
        """Initialize the relay server.

        Args:
            config: Server configuration (uses defaults if not provided)
            registry: Provider registry (a fresh one if not provided)
        """
        self._config = config or Config.default()
        self._registry = registry if registry is not None else ProviderRegistry()
        self._router = MessageRouter(self._registry)
        self._liveness = LivenessMonitor(
            self._router,
            interval_seconds=self._config.liveness.heartbeat_interval_seconds,
        )
        self._server: Server | None = None
        self._stopped = asyncio.Event()

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def liveness(self) -> LivenessMonitor:
        return self._liveness

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def connection_count(self) -> int:
        """Get the number of open connections."""
        return len(self._router.handles)

    @property
    def bound_port(self) -> int | None:
        """Get the port actually bound (useful when configured with port 0)."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def listen(self) -> None:
        """Bind the listening socket and start the liveness monitor."""
        if self._server is not None:
            return
        server_config = self._config.server
        self._stopped.clear()
        # Heartbeats are driven by LivenessMonitor, not the library's keepalive
        self._server = await serve(
            self._handle_connection,
            server_config.host,
            server_config.port,
            ping_interval=None,
            max_size=server_config.max_message_size,
        )
        self._liveness.start()
        logger.info(f"Relay server listening on ws://{server_config.host}:{self.bound_port}")

    async def start(self) -> None:
        """Start the server and run until stop() is called."""
        await self.listen()
        await self._stopped.wait()

    async def stop(self) -> None:
        """Stop accepting connections and close the open ones."""
        await self._liveness.stop()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Relay server stopped")
        self._stopped.set()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        handle = ConnectionHandle(connection=WebSocketConnection(websocket))
        self._router.attach(handle)
        logger.debug(f"Connection opened: {handle.connection.connection_id}")
        try:
            async for raw in websocket:
                try:
                    await self._router.handle_message(handle, raw)
                except Exception:
                    logger.exception(f"Error handling message from {handle!r}")
        except ConnectionClosedError as e:
            logger.debug(f"Connection {handle.connection.connection_id} dropped: {e}")
        finally:
            self._router.detach(handle)
            logger.debug(f"Connection closed: {handle.connection.connection_id}")
