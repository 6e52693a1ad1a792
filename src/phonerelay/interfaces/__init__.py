"""Interfaces module - Connection abstraction and message envelopes."""

from phonerelay.interfaces.connection import Connection
from phonerelay.interfaces.messages import (
    ConsumerRegistration,
    InvalidRegistration,
    Message,
    ProviderRegistration,
    ProxyRequest,
    ProxyResponse,
    UnknownMessage,
    parse_message,
)

__all__ = [
    "Connection",
    "ConsumerRegistration",
    "InvalidRegistration",
    "Message",
    "ProviderRegistration",
    "ProxyRequest",
    "ProxyResponse",
    "UnknownMessage",
    "parse_message",
]
