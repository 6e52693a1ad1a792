"""Agents module - Reference provider and consumer endpoints for the relay."""

from phonerelay.agents.consumer import ConsumerClient, ProxyResult
from phonerelay.agents.provider import ProviderAgent

__all__ = [
    "ConsumerClient",
    "ProviderAgent",
    "ProxyResult",
]
