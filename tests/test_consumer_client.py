"""Tests for ConsumerClient response correlation."""

import asyncio
import base64

import pytest

from phonerelay.agents.consumer import ConsumerClient, ProxyResult
from phonerelay.errors import ProxyError
from tests.mocks import envelope


def pending_future(client: ConsumerClient, req_id: str) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    client._pending[req_id] = future
    return future


class TestConsumerDispatch:
    """Tests for ConsumerClient.dispatch."""

    @pytest.fixture
    def client(self) -> ConsumerClient:
        return ConsumerClient("ws://relay.invalid", target="P1", token="T")

    @pytest.mark.asyncio
    async def test_response_resolves_matching_request(self, client: ConsumerClient) -> None:
        """Test a proxy_res resolves only the request with its reqId."""
        first = pending_future(client, "r1")
        second = pending_future(client, "r2")

        client.dispatch(
            envelope(
                type="proxy_res",
                reqId="r1",
                status=200,
                headers={"content-type": "text/plain"},
                body=base64.b64encode(b"hello").decode(),
            )
        )

        assert first.done()
        assert not second.done()
        result = first.result()
        assert result == ProxyResult(
            req_id="r1", status=200, headers={"content-type": "text/plain"}, body=b"hello"
        )
        assert result.text == "hello"

    @pytest.mark.asyncio
    async def test_unknown_response_ignored(self, client: ConsumerClient) -> None:
        future = pending_future(client, "r1")

        client.dispatch(envelope(type="proxy_res", reqId="other", status=200))

        assert not future.done()

    @pytest.mark.asyncio
    async def test_relay_error_fails_pending(self, client: ConsumerClient) -> None:
        """Test a routing error fails every outstanding request."""
        first = pending_future(client, "r1")
        second = pending_future(client, "r2")

        client.dispatch(envelope(error="target_not_available"))

        for future in (first, second):
            with pytest.raises(ProxyError) as exc_info:
                future.result()
            assert exc_info.value.error == "target_not_available"

    @pytest.mark.asyncio
    async def test_malformed_response_fails_request(self, client: ConsumerClient) -> None:
        future = pending_future(client, "r1")

        client.dispatch(envelope(type="proxy_res", reqId="r1", status=200, body="%%%"))

        with pytest.raises(ProxyError):
            future.result()

    @pytest.mark.asyncio
    async def test_non_json_ignored(self, client: ConsumerClient) -> None:
        future = pending_future(client, "r1")

        client.dispatch("garbage")

        assert not future.done()

    @pytest.mark.asyncio
    async def test_request_requires_connection(self, client: ConsumerClient) -> None:
        with pytest.raises(ConnectionError):
            await client.request("GET", "https://example.com/")
