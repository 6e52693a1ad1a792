"""Message router - Registration, authentication and request/response routing."""

import logging

from phonerelay.core.handle import ConnectionHandle, Role
from phonerelay.core.registry import ProviderRegistry
from phonerelay.errors import EnvelopeError, ErrorCode
from phonerelay.interfaces.messages import (
    ConsumerRegistration,
    InvalidRegistration,
    Message,
    ProviderRegistration,
    ProxyRequest,
    ProxyResponse,
    encode_reply,
    parse_message,
)

logger = logging.getLogger(__name__)


class MessageRouter:
    """Routes inbound messages between providers and consumers.

    Each connection moves through:
        Unregistered -> Provider | Consumer -> Closed

    Flow:
        provider  --register-->  registry entry
        consumer  --register-->  bound to provider (secret checked)
        consumer  --proxy_req--> provider       (reqId recorded on consumer)
        provider  --proxy_res--> every consumer of that provider holding reqId

    Proxy messages are forwarded as the exact text received. Response routing
    scans the connected handles; this is O(connections) per response, which is
    fine for one provider serving a handful of consumers.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        """Initialize the router.

        Args:
            registry: Provider registry shared by all connections
        """
        self._registry = registry
        self._handles: set[ConnectionHandle] = set()

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def handles(self) -> list[ConnectionHandle]:
        """Snapshot of the currently connected handles."""
        return list(self._handles)

    def attach(self, handle: ConnectionHandle) -> None:
        """Start tracking a newly opened connection."""
        self._handles.add(handle)

    def detach(self, handle: ConnectionHandle) -> None:
        """Forget a closed connection and release its registry entry.

        Args:
            handle: The handle whose connection closed
        """
        self._handles.discard(handle)
        if handle.role is Role.PROVIDER and handle.identity:
            if self._registry.remove(handle.identity, handle):
                logger.info(f"Provider disconnected: {handle.identity}")
            else:
                logger.debug(f"Superseded provider connection closed: {handle.identity}")
        elif handle.role is Role.CONSUMER and handle.pending_requests:
            logger.debug(
                f"Consumer {handle.connection.connection_id} closed with "
                f"{len(handle.pending_requests)} pending request(s)"
            )

    async def handle_message(self, handle: ConnectionHandle, raw: str | bytes) -> None:
        """Process one inbound frame from a connection.

        Args:
            handle: The originating connection's handle
            raw: The frame as received from the transport
        """
        try:
            message = parse_message(raw)
        except EnvelopeError as e:
            logger.debug(f"Rejected envelope from {handle.connection.connection_id}: {e}")
            await self._reply(handle, error=e.code.value)
            return

        await self.dispatch(handle, message)

    async def dispatch(self, handle: ConnectionHandle, message: Message) -> None:
        """Route an already-parsed message."""
        if isinstance(message, (ProviderRegistration, ConsumerRegistration, InvalidRegistration)):
            if handle.is_registered:
                await self._reply(handle, ok=False, error=ErrorCode.ALREADY_REGISTERED.value)
                return

        if isinstance(message, ProviderRegistration):
            await self._register_provider(handle, message)
        elif isinstance(message, ConsumerRegistration):
            await self._register_consumer(handle, message)
        elif isinstance(message, InvalidRegistration):
            await self._reply(handle, ok=False, error=ErrorCode.INVALID_REGISTER.value)
        elif isinstance(message, ProxyRequest):
            await self._forward_request(handle, message)
        elif isinstance(message, ProxyResponse):
            await self._route_response(handle, message)
        else:
            await self._reply(handle, ok=False, error=ErrorCode.UNKNOWN_TYPE.value)

    async def _register_provider(
        self, handle: ConnectionHandle, message: ProviderRegistration
    ) -> None:
        handle.become_provider(message.identity)
        previous = self._registry.register(message.identity, message.token, handle)
        if previous is not None and previous.handle is not handle:
            # The old connection stays open until it closes or misses a heartbeat
            logger.warning(
                f"Provider {message.identity} re-registered; superseding "
                f"{previous.handle.connection.connection_id}"
            )
        await self._reply(handle, ok=True, msg="provider registered")
        logger.info(f"Provider registered: {message.identity}")

    async def _register_consumer(
        self, handle: ConnectionHandle, message: ConsumerRegistration
    ) -> None:
        if self._registry.verify(message.target, message.token) is None:
            logger.warning(
                f"Consumer {handle.connection.connection_id} rejected for target {message.target}"
            )
            await self._reply(handle, ok=False, error=ErrorCode.AUTH_FAILED.value)
            await handle.connection.close()
            return

        handle.become_consumer(message.target, message.token)
        await self._reply(handle, ok=True, msg="consumer registered")
        logger.info(f"Consumer connected for target {message.target}")

    async def _forward_request(self, handle: ConnectionHandle, message: ProxyRequest) -> None:
        if handle.role is not Role.CONSUMER or not handle.target_identity:
            await self._reply(handle, error=ErrorCode.NOT_REGISTERED.value)
            return
        if message.req_id is None:
            await self._reply(handle, error=ErrorCode.INVALID_ENVELOPE.value)
            return

        # Provider may have reconnected with a new secret or vanished since registration
        provider = self._registry.verify(handle.target_identity, handle.target_secret)
        if provider is None:
            await self._reply(handle, error=ErrorCode.TARGET_UNAVAILABLE.value)
            return

        # Recorded before the write; the response may arrive before send() returns
        handle.pending_requests.add(message.req_id)
        if not await provider.handle.connection.send(message.raw):
            logger.warning(
                f"Failed to forward request {message.req_id} to provider {handle.target_identity}"
            )
            await self._reply(handle, error=ErrorCode.FAILED_FORWARD.value)

    async def _route_response(self, handle: ConnectionHandle, message: ProxyResponse) -> None:
        if handle.role is not Role.PROVIDER:
            return
        if message.req_id is None:
            logger.debug(f"Rejected proxy_res without reqId from {handle.identity}")
            await self._reply(handle, error=ErrorCode.INVALID_ENVELOPE.value)
            return

        recipients = [
            h
            for h in self._handles
            if h.role is Role.CONSUMER
            and h.target_identity == handle.identity
            and message.req_id in h.pending_requests
        ]
        if not recipients:
            logger.debug(f"No consumer waiting for response {message.req_id} from {handle.identity}")
            return
        if len(recipients) > 1:
            logger.warning(
                f"Request id {message.req_id} held by {len(recipients)} consumers of "
                f"{handle.identity}; delivering to all"
            )

        for consumer in recipients:
            consumer.pending_requests.discard(message.req_id)
        for consumer in recipients:
            if not await consumer.connection.send(message.raw):
                logger.debug(
                    f"Dropped response {message.req_id} for closed consumer "
                    f"{consumer.connection.connection_id}"
                )

    async def _reply(self, handle: ConnectionHandle, **fields: object) -> None:
        await handle.connection.send(encode_reply(**fields))
