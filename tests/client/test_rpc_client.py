"""Tests for client/rpc.py - SolanaRpcClient over a mocked transport."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from solders.keypair import Keypair

from validator_runner.client.rpc import SolanaRpcClient, default_client_factory
from validator_runner.errors import RpcError
from validator_runner.shared.enums import Commitment

RPC_URL = "http://127.0.0.1:8899"
PUBSUB_URL = "ws://127.0.0.1:8900"


class FakeNode:
    """Scripted JSON-RPC responder recording every request body."""

    def __init__(self, handlers):
        self.handlers = handlers
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        handler = self.handlers[body["method"]]
        result = handler(body) if callable(handler) else handler
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **result})

    def methods(self) -> list[str]:
        return [r["method"] for r in self.requests]


def _client(node: FakeNode, commitment=Commitment.PROCESSED, **kwargs) -> SolanaRpcClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(node))
    return SolanaRpcClient(RPC_URL, PUBSUB_URL, commitment, client=http, confirm_poll_interval=0, **kwargs)


class TestBasicCalls:
    """Tests for single-request helpers."""

    @pytest.mark.asyncio
    async def test_get_health(self):
        """getHealth returns the node's string result."""
        node = FakeNode({"getHealth": {"result": "ok"}})
        async with _client(node) as client:
            assert await client.get_health() == "ok"
        assert node.requests[0]["jsonrpc"] == "2.0"
        assert "params" not in node.requests[0]

    @pytest.mark.asyncio
    async def test_get_balance_uses_commitment(self):
        """getBalance passes the address and configured commitment."""
        address = Keypair().pubkey()
        node = FakeNode({"getBalance": {"result": {"context": {"slot": 1}, "value": 5_000_000_000}}})
        async with _client(node, Commitment.CONFIRMED) as client:
            assert await client.get_balance(address) == 5_000_000_000
        assert node.requests[0]["params"] == [str(address), {"commitment": "confirmed"}]

    @pytest.mark.asyncio
    async def test_request_ids_increase(self):
        """Each request gets a fresh id."""
        node = FakeNode({"getSlot": {"result": 1012}})
        async with _client(node) as client:
            await client.get_slot()
            await client.get_slot()
        assert [r["id"] for r in node.requests] == [1, 2]

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        """A JSON-RPC error object raises RpcError with its code."""
        node = FakeNode({"getHealth": {"error": {"code": -32005, "message": "Node is behind"}}})
        async with _client(node) as client:
            with pytest.raises(RpcError, match="Node is behind") as exc_info:
                await client.get_health()
        assert exc_info.value.code == -32005

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """A body without result or error is rejected."""
        node = FakeNode({"getHealth": {}})
        async with _client(node) as client:
            with pytest.raises(RpcError, match="malformed"):
                await client.get_health()


class TestRetries:
    """Tests for transport retry behavior."""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        """5xx responses are retried with backoff."""
        responses = iter([httpx.Response(503), {"result": "ok"}])
        node = FakeNode({"getHealth": lambda body: next(responses)})
        with patch("validator_runner.client.rpc.asyncio.sleep", AsyncMock()) as sleep:
            async with _client(node, max_retries=2) as client:
                assert await client.get_health() == "ok"
        assert len(node.requests) == 2
        sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        """4xx responses fail immediately."""
        node = FakeNode({"getHealth": httpx.Response(400)})
        async with _client(node, max_retries=3) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_health()
        assert len(node.requests) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self):
        """Connection errors are retried max_retries times, then raised."""
        attempts = []

        def refuse(request):
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        client = SolanaRpcClient(RPC_URL, PUBSUB_URL, client=http, max_retries=2)
        with patch("validator_runner.client.rpc.asyncio.sleep", AsyncMock()) as sleep:
            with pytest.raises(httpx.ConnectError):
                await client.get_health()
        await client.aclose()
        assert len(attempts) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.25, 0.5]


class TestFunding:
    """Tests for request_funding and confirmation polling."""

    @pytest.mark.asyncio
    async def test_request_funding_confirms(self):
        """Funding airdrops then polls statuses until the commitment is met."""
        address = Keypair().pubkey()
        statuses = iter(
            [
                {"result": {"value": [None]}},
                {"result": {"value": [{"slot": 5, "confirmationStatus": "processed", "err": None}]}},
                {"result": {"value": [{"slot": 5, "confirmationStatus": "confirmed", "err": None}]}},
            ]
        )
        node = FakeNode(
            {
                "requestAirdrop": {"result": "sig-1"},
                "getSignatureStatuses": lambda body: next(statuses),
            }
        )
        async with _client(node, Commitment.CONFIRMED) as client:
            assert await client.request_funding(address, 500_000_000_000) == "sig-1"

        assert node.methods() == ["requestAirdrop"] + ["getSignatureStatuses"] * 3
        assert node.requests[0]["params"][:2] == [str(address), 500_000_000_000]
        assert node.requests[1]["params"] == [["sig-1"], {"searchTransactionHistory": True}]

    @pytest.mark.asyncio
    async def test_processed_returns_first_status(self):
        """At processed commitment the first status is enough."""
        node = FakeNode(
            {
                "requestAirdrop": {"result": "sig-2"},
                "getSignatureStatuses": {"result": {"value": [{"confirmationStatus": "processed", "err": None}]}},
            }
        )
        async with _client(node) as client:
            await client.request_funding(Keypair().pubkey(), 1)
        assert node.methods().count("getSignatureStatuses") == 1

    @pytest.mark.asyncio
    async def test_failed_transaction(self):
        """A status carrying an error raises RpcError."""
        node = FakeNode(
            {
                "requestAirdrop": {"result": "sig-3"},
                "getSignatureStatuses": {
                    "result": {"value": [{"confirmationStatus": "processed", "err": {"InstructionError": [0, "Custom"]}}]}
                },
            }
        )
        async with _client(node) as client:
            with pytest.raises(RpcError, match="sig-3 failed") as exc_info:
                await client.request_funding(Keypair().pubkey(), 1)
        assert exc_info.value.data == {"InstructionError": [0, "Custom"]}


class TestDefaultClientFactory:
    """Tests for default_client_factory."""

    @pytest.mark.asyncio
    async def test_builds_client(self):
        """The factory wires URLs and commitment through."""
        client = default_client_factory(RPC_URL, PUBSUB_URL, Commitment.FINALIZED)
        assert isinstance(client, SolanaRpcClient)
        assert client.rpc_url == RPC_URL
        assert client.pubsub_url == PUBSUB_URL
        assert client.commitment is Commitment.FINALIZED
        await client.aclose()
