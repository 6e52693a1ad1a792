"""Message envelopes exchanged over the relay.

Every inbound frame is parsed once, at the boundary, into one of the
variants below. Proxy messages keep the exact text they arrived as, so the
router can forward them without re-encoding.
"""

import json
from dataclasses import dataclass
from typing import Any

from phonerelay.errors import EnvelopeError, ErrorCode

PROVIDER_ROLES = frozenset({"provider", "phone"})
CONSUMER_ROLES = frozenset({"consumer", "client"})


@dataclass(frozen=True)
class ProviderRegistration:
    """A provider announcing itself under an identity and shared secret."""

    identity: str
    token: str


@dataclass(frozen=True)
class ConsumerRegistration:
    """A consumer asking to be bound to a provider."""

    target: str
    token: str


@dataclass(frozen=True)
class InvalidRegistration:
    """A register message with an unknown role or missing fields."""

    role: Any


@dataclass(frozen=True)
class ProxyRequest:
    """Consumer -> provider request envelope.

    Attributes:
        req_id: Consumer-chosen correlation id, None when absent or not a string
        raw: The message text exactly as received
    """

    req_id: str | None
    raw: str


@dataclass(frozen=True)
class ProxyResponse:
    """Provider -> consumer response envelope."""

    req_id: str | None
    raw: str


@dataclass(frozen=True)
class UnknownMessage:
    """Any well-formed message whose type the relay does not handle."""

    type: Any


Message = (
    ProviderRegistration
    | ConsumerRegistration
    | InvalidRegistration
    | ProxyRequest
    | ProxyResponse
    | UnknownMessage
)


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _parse_register(data: dict[str, Any]) -> Message:
    role = data.get("role")
    token = data.get("token")
    if role in PROVIDER_ROLES and _non_empty(data.get("id")) and _non_empty(token):
        return ProviderRegistration(identity=data["id"], token=token)
    if role in CONSUMER_ROLES and _non_empty(data.get("target")) and _non_empty(token):
        return ConsumerRegistration(target=data["target"], token=token)
    return InvalidRegistration(role=role)


def parse_message(raw: str | bytes) -> Message:
    """Parse an inbound frame into a message variant.

    Args:
        raw: Text (or UTF-8 bytes) of one transport frame

    Returns:
        The parsed message variant

    Raises:
        EnvelopeError: If the frame is not a JSON object
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EnvelopeError(ErrorCode.BAD_JSON, str(e)) from e

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise EnvelopeError(ErrorCode.BAD_JSON, str(e)) from e

    if not isinstance(data, dict):
        raise EnvelopeError(ErrorCode.BAD_JSON, "envelope must be a JSON object")

    msg_type = data.get("type")
    if msg_type == "register":
        return _parse_register(data)

    if msg_type in ("proxy_req", "proxy_res"):
        # A missing reqId is rejected by the router after its role check
        req_id = data.get("reqId")
        if not isinstance(req_id, str):
            req_id = None
        if msg_type == "proxy_req":
            return ProxyRequest(req_id=req_id, raw=raw)
        return ProxyResponse(req_id=req_id, raw=raw)

    return UnknownMessage(type=msg_type)


def encode_reply(**fields: Any) -> str:
    """Serialize a relay-originated reply."""
    return json.dumps(fields)
