"""Consumer client - sends HTTP requests through the relay to a provider."""

import asyncio
import base64
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from phonerelay.errors import ProxyError, RegistrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyResult:
    """A decoded proxy_res.

    Attributes:
        req_id: Correlation id of the originating request
        status: HTTP status reported by the provider
        headers: Response headers reported by the provider
        body: Decoded response body
    """

    req_id: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ProxyResult":
        headers = message.get("headers")
        return cls(
            req_id=message["reqId"],
            status=int(message.get("status") or 0),
            headers=dict(headers) if isinstance(headers, dict) else {},
            body=base64.b64decode(message.get("body") or "", validate=True),
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class ConsumerClient:
    """Consumer endpoint bound to one provider through the relay.

    Requests get a fresh reqId and resolve when the matching proxy_res
    arrives. The relay never times out on a consumer's behalf, so the
    timeout here is the only bound on how long a request waits.

    Routing errors from the relay carry no reqId; when one arrives, every
    outstanding request fails with ProxyError.

    Example usage:
        async with ConsumerClient("ws://relay:8080", target="P1", token="secret") as client:
            result = await client.request("GET", "https://example.com/")
    """

    DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        relay_url: str,
        target: str,
        token: str,
        timeout: float | None = None,
    ) -> None:
        """Initialize the consumer client.

        Args:
            relay_url: WebSocket URL of the relay
            target: Identity of the provider to bind to
            token: Shared secret of that provider
            timeout: Default per-request timeout in seconds (default: 60.0)
        """
        self.relay_url = relay_url
        self.target = target
        self.token = token
        self.timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future[ProxyResult]] = {}

    async def connect(self) -> None:
        """Connect to the relay and register as a consumer.

        Raises:
            RegistrationError: If the relay rejects the target or token
        """
        self._ws = await connect(self.relay_url)
        await self._ws.send(
            json.dumps(
                {"type": "register", "role": "consumer", "target": self.target, "token": self.token}
            )
        )
        ack = json.loads(await self._ws.recv())
        if not ack.get("ok"):
            await self._ws.close()
            self._ws = None
            raise RegistrationError(str(ack.get("error")))
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        logger.info(f"Registered with relay for target {self.target}")

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._ws = None

    async def __aenter__(self) -> "ConsumerClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes = b"",
        timeout: float | None = None,
    ) -> ProxyResult:
        """Send a request through the relay and wait for the provider's answer.

        Args:
            method: HTTP method
            url: Absolute URL the provider should fetch
            headers: Request headers
            body: Request body
            timeout: Override of the default timeout in seconds

        Returns:
            The provider's response

        Raises:
            ProxyError: If the relay reports a routing failure
            ConnectionError: If not connected or the relay connection closes
            asyncio.TimeoutError: If no response arrives in time
        """
        if self._ws is None:
            raise ConnectionError("Consumer is not connected")

        req_id = uuid.uuid4().hex
        future: asyncio.Future[ProxyResult] = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        message = {
            "type": "proxy_req",
            "reqId": req_id,
            "method": method,
            "url": url,
            "headers": headers or {},
            "body": base64.b64encode(body).decode("ascii"),
        }
        try:
            await self._ws.send(json.dumps(message))
            return await asyncio.wait_for(future, timeout if timeout is not None else self.timeout)
        except ConnectionClosed as e:
            raise ConnectionError(f"Relay connection closed: {e}") from e
        finally:
            self._pending.pop(req_id, None)

    def dispatch(self, raw: str | bytes) -> None:
        """Resolve outstanding requests from one relay message."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON message from relay")
            return
        if not isinstance(message, dict):
            return

        if message.get("type") == "proxy_res":
            req_id = message.get("reqId")
            future = self._pending.get(req_id) if isinstance(req_id, str) else None
            if future is None or future.done():
                logger.debug(f"Response for unknown request {req_id}")
                return
            try:
                future.set_result(ProxyResult.from_message(message))
            except (KeyError, TypeError, ValueError) as e:
                future.set_exception(ProxyError(f"malformed response: {e}"))
        elif "error" in message:
            logger.warning(f"Relay reported error: {message['error']}")
            self._fail_pending(ProxyError(str(message["error"])))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self.dispatch(raw)
        except ConnectionClosed as e:
            logger.debug(f"Relay connection dropped: {e}")
        finally:
            self._fail_pending(ConnectionError("Relay connection closed"))

    @property
    def pending_count(self) -> int:
        """Get the number of requests awaiting a response."""
        return len(self._pending)
