"""Error taxonomy for relay replies."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes sent back to peers in relay-originated replies."""

    BAD_JSON = "bad-json"
    INVALID_ENVELOPE = "invalid_envelope"
    INVALID_REGISTER = "invalid_register"
    ALREADY_REGISTERED = "already_registered"
    AUTH_FAILED = "target_not_found_or_bad_token"
    NOT_REGISTERED = "not_registered_as_consumer"
    TARGET_UNAVAILABLE = "target_not_available"
    FAILED_FORWARD = "failed_forward"
    UNKNOWN_TYPE = "unknown_type"


class RelayError(Exception):
    """Base class for errors reported to a peer without closing its connection."""

    def __init__(self, code: ErrorCode, detail: str = "") -> None:
        super().__init__(detail or code.value)
        self.code = code


class EnvelopeError(RelayError):
    """Raised when an inbound message cannot be parsed into a known envelope."""


class RegistrationError(Exception):
    """Raised by relay clients when the relay rejects a register message."""

    def __init__(self, error: str) -> None:
        super().__init__(f"Relay rejected registration: {error}")
        self.error = error


class ProxyError(Exception):
    """Raised by the consumer client when the relay reports a routing failure."""

    def __init__(self, error: str) -> None:
        super().__init__(f"Relay could not route request: {error}")
        self.error = error
