"""Provider agent - performs proxied HTTP requests received through the relay."""

import argparse
import asyncio
import base64
import binascii
import json
import logging
import sys
from typing import Any

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from phonerelay.errors import RegistrationError

logger = logging.getLogger(__name__)

# httpx decodes the body, so these no longer describe what is forwarded
STRIPPED_RESPONSE_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


class ProviderAgent:
    """Provider endpoint: registers with the relay and serves proxy_req messages.

    Each request is performed concurrently with httpx and answered with a
    proxy_res carrying the upstream status, headers and base64 body.
    Failures become synthetic responses (400 for requests httpx cannot build,
    502 for connection errors, 504 for timeouts) so the consumer always gets
    an answer.

    Example usage:
        agent = ProviderAgent("ws://relay:8080", provider_id="P1", token="secret")
        await agent.run()
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        relay_url: str,
        provider_id: str,
        token: str,
        timeout: float | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider agent.

        Args:
            relay_url: WebSocket URL of the relay
            provider_id: Identity to register under
            token: Shared secret consumers must present
            timeout: Upstream request timeout in seconds (default: 30.0)
            http_transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        self.relay_url = relay_url
        self.provider_id = provider_id
        self.token = token
        self.timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._http_transport = http_transport
        self._tasks: set[asyncio.Task] = set()

    def _create_client(self) -> httpx.AsyncClient:
        """Create an HTTP client with configured timeout.

        Returns:
            Configured httpx.AsyncClient for use with async context manager
        """
        return httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport)

    async def perform(self, request: dict[str, Any]) -> dict[str, Any]:
        """Perform one proxied request.

        Args:
            request: A decoded proxy_req message

        Returns:
            The proxy_res message to send back
        """
        req_id = request.get("reqId")
        method = str(request.get("method") or "GET").upper()
        url = request.get("url")
        headers = request.get("headers")
        if not isinstance(headers, dict):
            headers = {}

        if not isinstance(url, str) or not url:
            return self._error_response(req_id, 400, "missing url")
        try:
            body = base64.b64decode(request.get("body") or "", validate=True)
        except (binascii.Error, TypeError, ValueError):
            return self._error_response(req_id, 400, "body is not valid base64")

        try:
            async with self._create_client() as client:
                response = await client.request(method, url, headers=headers, content=body or None)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, TypeError, ValueError) as e:
            logger.warning(f"Rejected request {req_id} for {url!r}: {e}")
            return self._error_response(req_id, 400, f"invalid request: {e}")
        except httpx.ConnectError:
            return self._error_response(req_id, 502, f"cannot connect to {url}")
        except httpx.TimeoutException:
            return self._error_response(req_id, 504, f"request to {url} timed out")
        except httpx.HTTPError as e:
            logger.error(f"Upstream error for {method} {url}: {e}")
            return self._error_response(req_id, 502, str(e))

        logger.debug(f"{method} {url} -> {response.status_code}")
        return {
            "type": "proxy_res",
            "reqId": req_id,
            "status": response.status_code,
            "headers": {
                name: value
                for name, value in response.headers.items()
                if name.lower() not in STRIPPED_RESPONSE_HEADERS
            },
            "body": base64.b64encode(response.content).decode("ascii"),
        }

    @staticmethod
    def _error_response(req_id: Any, status: int, reason: str) -> dict[str, Any]:
        return {
            "type": "proxy_res",
            "reqId": req_id,
            "status": status,
            "headers": {"content-type": "text/plain; charset=utf-8"},
            "body": base64.b64encode(reason.encode()).decode("ascii"),
        }

    async def register(self, ws: ClientConnection) -> None:
        """Send the register message and wait for the relay's acknowledgment.

        Raises:
            RegistrationError: If the relay rejects the registration
        """
        await ws.send(
            json.dumps(
                {"type": "register", "role": "provider", "id": self.provider_id, "token": self.token}
            )
        )
        ack = json.loads(await ws.recv())
        if not ack.get("ok"):
            raise RegistrationError(str(ack.get("error")))
        logger.info(f"Registered with relay as {self.provider_id}")

    async def serve(self, ws: ClientConnection) -> None:
        """Answer proxy_req messages until the relay connection closes."""
        async for raw in ws:
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring non-JSON message from relay")
                continue
            if not isinstance(message, dict):
                continue
            if message.get("type") == "proxy_req":
                task = asyncio.create_task(self._answer(ws, message))
                self._tasks.add(task)
                task.add_done_callback(self._on_answer_done)
            elif "error" in message:
                logger.warning(f"Relay reported error: {message['error']}")

    def _on_answer_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Failed to answer proxied request", exc_info=task.exception())

    async def _answer(self, ws: ClientConnection, request: dict[str, Any]) -> None:
        response = await self.perform(request)
        try:
            await ws.send(json.dumps(response))
        except ConnectionClosed:
            logger.debug(f"Relay closed before response {request.get('reqId')} was sent")

    async def run(self) -> None:
        """Connect, register and serve until the relay connection closes."""
        async with connect(self.relay_url) as ws:
            await self.register(ws)
            await self.serve(ws)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="phonerelay-provider",
        description="Serve proxied HTTP requests received through a phonerelay relay",
    )
    parser.add_argument("--relay", required=True, help="Relay URL, e.g. ws://host:8080")
    parser.add_argument("--id", required=True, dest="provider_id", help="Provider identity")
    parser.add_argument("--token", required=True, help="Shared secret for consumers")
    parser.add_argument("--timeout", type=float, help="Upstream request timeout in seconds")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)
    if not isinstance(logging.getLevelName(args.log_level.upper()), int):
        parser.error(f"unknown log level: {args.log_level}")

    logging.basicConfig(level=args.log_level.upper())
    agent = ProviderAgent(args.relay, args.provider_id, args.token, timeout=args.timeout)
    try:
        asyncio.run(agent.run())
    except KeyboardInterrupt:
        logger.info("Provider stopped by user")
    except RegistrationError as e:
        logger.error(str(e))
        return 1
    except (OSError, ConnectionClosed) as e:
        logger.error(f"Relay connection failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
