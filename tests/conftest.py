"""Shared test fixtures for pytest."""

from collections.abc import Callable

import pytest

from phonerelay.config import Config
from phonerelay.core.handle import ConnectionHandle
from phonerelay.core.message_router import MessageRouter
from phonerelay.core.registry import ProviderRegistry
from tests.mocks import MockConnection


@pytest.fixture
def registry() -> ProviderRegistry:
    """Create an empty ProviderRegistry."""
    return ProviderRegistry()


@pytest.fixture
def router(registry: ProviderRegistry) -> MessageRouter:
    """Create a MessageRouter over the test registry."""
    return MessageRouter(registry)


@pytest.fixture
def connect(router: MessageRouter) -> Callable[[str], ConnectionHandle]:
    """Factory that opens a mock connection and attaches it to the router."""

    def _connect(connection_id: str = "mock", fail_sends: bool = False) -> ConnectionHandle:
        handle = ConnectionHandle(
            connection=MockConnection(connection_id=connection_id, fail_sends=fail_sends)
        )
        router.attach(handle)
        return handle

    return _connect


@pytest.fixture
def default_config() -> Config:
    """Create default configuration."""
    return Config.default()
