"""Tests for RelayServer over real WebSocket connections."""

import asyncio
import json
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from websockets.asyncio.client import connect

from phonerelay.agents.consumer import ConsumerClient
from phonerelay.agents.provider import ProviderAgent
from phonerelay.config import Config
from phonerelay.errors import ProxyError, RegistrationError
from phonerelay.server import RelayServer
from tests.mocks import envelope


def upstream(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=f"{request.method} {request.url.path}".encode())


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true or the timeout expires."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[RelayServer, None]:
    """Start a relay on a free local port."""
    config = Config.default()
    config.server.host = "127.0.0.1"
    config.server.port = 0
    relay = RelayServer(config=config)
    await relay.listen()
    try:
        yield relay
    finally:
        await relay.stop()


def relay_url(server: RelayServer) -> str:
    return f"ws://127.0.0.1:{server.bound_port}"


class TestRelayServer:
    """Tests for RelayServer lifecycle."""

    def test_initialization(self) -> None:
        """Test server initializes with default config."""
        server = RelayServer()

        assert server.registry.provider_count == 0
        assert server.connection_count == 0
        assert not server.is_running
        assert server.bound_port is None
        assert server.liveness.interval_seconds == 30.0

    def test_heartbeat_interval_from_config(self) -> None:
        config = Config.default()
        config.liveness.heartbeat_interval_seconds = 5

        server = RelayServer(config=config)

        assert server.liveness.interval_seconds == 5

    @pytest.mark.asyncio
    async def test_listen_and_stop(self, server: RelayServer) -> None:
        """Test the server binds a port and starts the liveness monitor."""
        assert server.is_running
        assert server.bound_port
        assert server.liveness.is_running

        await server.stop()

        assert not server.is_running
        assert not server.liveness.is_running

    @pytest.mark.asyncio
    async def test_start_returns_after_stop(self) -> None:
        config = Config.default()
        config.server.host = "127.0.0.1"
        config.server.port = 0
        server = RelayServer(config=config)

        server_task = asyncio.create_task(server.start())
        await wait_until(lambda: server.is_running)
        await server.stop()

        await asyncio.wait_for(server_task, timeout=2)


class TestRelayEndToEnd:
    """End-to-end routing through real sockets."""

    @pytest.mark.asyncio
    async def test_request_round_trip(self, server: RelayServer) -> None:
        """Test P1/T: consumer request reaches the provider and the answer comes back."""
        agent = ProviderAgent(relay_url(server), "P1", "T", http_transport=httpx.MockTransport(upstream))
        async with connect(relay_url(server)) as provider_ws:
            await agent.register(provider_ws)
            serve_task = asyncio.create_task(agent.serve(provider_ws))

            async with ConsumerClient(relay_url(server), target="P1", token="T", timeout=5) as client:
                result = await client.request("GET", "https://example.com/hello")

            assert result.status == 200
            assert result.text == "GET /hello"
            serve_task.cancel()

    @pytest.mark.asyncio
    async def test_concurrent_consumers_get_own_responses(self, server: RelayServer) -> None:
        agent = ProviderAgent(relay_url(server), "P1", "T", http_transport=httpx.MockTransport(upstream))
        async with connect(relay_url(server)) as provider_ws:
            await agent.register(provider_ws)
            serve_task = asyncio.create_task(agent.serve(provider_ws))

            async with ConsumerClient(relay_url(server), "P1", "T", timeout=5) as a, ConsumerClient(
                relay_url(server), "P1", "T", timeout=5
            ) as b:
                result_a, result_b = await asyncio.gather(
                    a.request("GET", "https://example.com/a"),
                    b.request("DELETE", "https://example.com/b"),
                )

            assert result_a.text == "GET /a"
            assert result_b.text == "DELETE /b"
            serve_task.cancel()

    @pytest.mark.asyncio
    async def test_bad_token_rejected_and_closed(self, server: RelayServer) -> None:
        agent = ProviderAgent(relay_url(server), "P1", "T")
        async with connect(relay_url(server)) as provider_ws:
            await agent.register(provider_ws)

            with pytest.raises(RegistrationError) as exc_info:
                await ConsumerClient(relay_url(server), "P1", "wrong").connect()

        assert exc_info.value.error == "target_not_found_or_bad_token"

    @pytest.mark.asyncio
    async def test_unregistered_request_rejected(self, server: RelayServer) -> None:
        async with connect(relay_url(server)) as ws:
            await ws.send(envelope(type="proxy_req", reqId="r1", url="https://example.com/"))
            reply = json.loads(await ws.recv())

        assert reply == {"error": "not_registered_as_consumer"}

    @pytest.mark.asyncio
    async def test_bad_json_keeps_connection_open(self, server: RelayServer) -> None:
        async with connect(relay_url(server)) as ws:
            await ws.send("not json")
            first = json.loads(await ws.recv())
            await ws.send(envelope(type="ping"))
            second = json.loads(await ws.recv())

        assert first == {"error": "bad-json"}
        assert second == {"ok": False, "error": "unknown_type"}

    @pytest.mark.asyncio
    async def test_provider_disconnect_unregisters(self, server: RelayServer) -> None:
        """Test a provider closing removes it and bound consumers see target_not_available."""
        agent = ProviderAgent(relay_url(server), "P1", "T")
        provider_ws = await connect(relay_url(server))
        await agent.register(provider_ws)

        async with ConsumerClient(relay_url(server), "P1", "T", timeout=5) as client:
            await provider_ws.close()
            await wait_until(lambda: server.registry.lookup("P1") is None)

            with pytest.raises(ProxyError) as exc_info:
                await client.request("GET", "https://example.com/")

        assert exc_info.value.error == "target_not_available"

    @pytest.mark.asyncio
    async def test_connections_tracked(self, server: RelayServer) -> None:
        async with connect(relay_url(server)):
            await wait_until(lambda: server.connection_count == 1)

        await wait_until(lambda: server.connection_count == 0)

    @pytest.mark.asyncio
    async def test_responsive_client_survives_heartbeats(self) -> None:
        """Test a client that answers pings is not evicted by fast sweeps."""
        config = Config.default()
        config.server.host = "127.0.0.1"
        config.server.port = 0
        config.liveness.heartbeat_interval_seconds = 0.05
        server = RelayServer(config=config)
        await server.listen()
        try:
            async with connect(relay_url(server)) as ws:
                await asyncio.sleep(0.4)
                await ws.send(envelope(type="ping"))
                reply = json.loads(await ws.recv())
                assert reply["error"] == "unknown_type"
                assert server.connection_count == 1
        finally:
            await server.stop()
