"""Transport module - Connection implementations."""

from phonerelay.interfaces.connection import Connection
from phonerelay.transport.websocket_transport import WebSocketConnection

__all__ = [
    "Connection",
    "WebSocketConnection",
]
