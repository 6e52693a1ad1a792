"""Per-connection session state."""

from dataclasses import dataclass, field
from enum import Enum

from phonerelay.interfaces.connection import Connection


class Role(Enum):
    """Logical role of a connection, fixed at registration."""

    UNSET = "unset"
    PROVIDER = "provider"
    CONSUMER = "consumer"


@dataclass(eq=False)
class ConnectionHandle:
    """Session attributes attached to one live connection.

    Handles compare by identity, so they can be stored in sets and matched
    against registry entries even when their attributes are equal.

    Attributes:
        connection: The underlying transport connection
        role: Role assigned at registration (UNSET until then)
        identity: Provider identity (providers only)
        target_identity: Provider this consumer is bound to (consumers only)
        target_secret: Secret the consumer presented (consumers only)
        pending_requests: Request ids forwarded and not yet answered
        alive: Liveness flag, cleared by each probe and set by its answer
    """

    connection: Connection
    role: Role = Role.UNSET
    identity: str | None = None
    target_identity: str | None = None
    target_secret: str | None = None
    pending_requests: set[str] = field(default_factory=set)
    alive: bool = True

    @property
    def is_registered(self) -> bool:
        """Check if the handle has left the unregistered state."""
        return self.role is not Role.UNSET

    def become_provider(self, identity: str) -> None:
        """Transition an unregistered handle to the provider role.

        Raises:
            RuntimeError: If the role was already assigned
        """
        self._assign(Role.PROVIDER)
        self.identity = identity

    def become_consumer(self, target_identity: str, target_secret: str) -> None:
        """Transition an unregistered handle to the consumer role.

        Raises:
            RuntimeError: If the role was already assigned
        """
        self._assign(Role.CONSUMER)
        self.target_identity = target_identity
        self.target_secret = target_secret

    def mark_alive(self) -> None:
        self.alive = True

    def _assign(self, role: Role) -> None:
        if self.is_registered:
            raise RuntimeError(f"role already set to {self.role.value}")
        self.role = role

    def __repr__(self) -> str:
        name = self.identity or self.target_identity or "-"
        return f"<ConnectionHandle {self.connection.connection_id} {self.role.value} {name}>"
