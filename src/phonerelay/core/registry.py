"""Provider registry mapping identities to live connections."""

import hmac
import logging
from dataclasses import dataclass

from phonerelay.core.handle import ConnectionHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEntry:
    """A registered provider.

    Attributes:
        handle: The provider's connection handle
        secret: Shared secret consumers must present
    """

    handle: ConnectionHandle
    secret: str

    def accepts(self, secret: str | None) -> bool:
        """Check a presented secret against the provider's secret."""
        if secret is None:
            return False
        return hmac.compare_digest(self.secret.encode(), secret.encode())


class ProviderRegistry:
    """Process-scoped store of registered providers.

    - At most one entry per identity
    - A later registration under the same identity replaces the earlier one
    - Removal on close only happens if the closing handle is still current,
      so a superseded connection cannot evict its replacement

    All methods are synchronous; callers on one event loop therefore never
    interleave inside a mutation.
    """

    def __init__(self) -> None:
        self._providers: dict[str, ProviderEntry] = {}

    def register(
        self, identity: str, secret: str, handle: ConnectionHandle
    ) -> ProviderEntry | None:
        """Insert or overwrite the entry for an identity.

        Args:
            identity: Provider identity
            secret: Shared secret declared by the provider
            handle: The provider's connection handle

        Returns:
            The entry that was replaced, or None if the identity was new
        """
        previous = self._providers.get(identity)
        self._providers[identity] = ProviderEntry(handle=handle, secret=secret)
        return previous

    def lookup(self, identity: str) -> ProviderEntry | None:
        """Get the entry registered under an identity, if any."""
        return self._providers.get(identity)

    def verify(self, identity: str | None, secret: str | None) -> ProviderEntry | None:
        """Look up an identity and check the presented secret.

        Returns:
            The entry if it exists and the secret matches, None otherwise
        """
        if identity is None:
            return None
        entry = self._providers.get(identity)
        if entry is None or not entry.accepts(secret):
            return None
        return entry

    def remove(self, identity: str, handle: ConnectionHandle) -> bool:
        """Remove an identity if it is still registered to the given handle.

        Args:
            identity: Provider identity
            handle: The handle whose connection is closing

        Returns:
            True if the entry was removed, False if absent or superseded
        """
        entry = self._providers.get(identity)
        if entry is None or entry.handle is not handle:
            return False
        del self._providers[identity]
        return True

    def identities(self) -> list[str]:
        """Get the identities of all registered providers."""
        return list(self._providers)

    @property
    def provider_count(self) -> int:
        """Get the number of registered providers."""
        return len(self._providers)
