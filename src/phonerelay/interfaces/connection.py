"""Connection interface - Abstract base class for one live peer channel."""

from abc import ABC, abstractmethod
from collections.abc import Callable


class Connection(ABC):
    """Abstract base class for a bidirectional text-message channel.

    Implementations wrap a single transport-level connection (a WebSocket,
    or a fake in tests). The relay only ever sends text, closes, terminates
    and probes; framing and handshakes belong to the implementation.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier of this connection, used in log messages."""

    @abstractmethod
    async def send(self, text: str) -> bool:
        """Send a text message to the peer.

        Args:
            text: The message text to send

        Returns:
            True if the message was handed to the transport, False otherwise
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection gracefully."""

    @abstractmethod
    def terminate(self) -> None:
        """Drop the connection immediately, without a closing handshake."""

    @abstractmethod
    async def ping(self, on_pong: Callable[[], None]) -> bool:
        """Send a liveness probe.

        Args:
            on_pong: Called when the peer acknowledges the probe

        Returns:
            True if the probe was sent, False if the connection is gone
        """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if the connection is still open."""
