"""Core module - Connection handles, provider registry, routing and liveness."""

from phonerelay.core.handle import ConnectionHandle, Role
from phonerelay.core.liveness import LivenessMonitor
from phonerelay.core.message_router import MessageRouter
from phonerelay.core.registry import ProviderEntry, ProviderRegistry

__all__ = [
    "ConnectionHandle",
    "LivenessMonitor",
    "MessageRouter",
    "ProviderEntry",
    "ProviderRegistry",
    "Role",
]
