import json

import httpx
import pytest

from solana_presale.errors import TransientFetchError
from solana_presale.rpc import RpcClient

pytestmark = pytest.mark.asyncio

RPC_URL = "http://rpc.test"


def client_for(handler) -> RpcClient:
    return RpcClient(RPC_URL, transport=httpx.MockTransport(handler))


async def test_get_signatures_passes_before_and_limit():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": [{"signature": "s1", "blockTime": 5}]})

    async with client_for(handler) as rpc:
        result = await rpc.get_signatures_for_address("addr", before="s0", limit=10)

    assert result == [{"signature": "s1", "blockTime": 5}]
    assert seen["method"] == "getSignaturesForAddress"
    assert seen["params"][0] == "addr"
    assert seen["params"][1]["before"] == "s0"
    assert seen["params"][1]["limit"] == 10


async def test_first_page_omits_before():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": []})

    async with client_for(handler) as rpc:
        assert await rpc.get_signatures_for_address("addr") == []
    assert "before" not in seen["params"][1]


async def test_parsed_transactions_batch_keeps_input_order():
    def handler(request):
        calls = json.loads(request.content)
        assert all(c["method"] == "getTransaction" for c in calls)
        assert calls[0]["params"][1]["encoding"] == "jsonParsed"
        assert calls[0]["params"][1]["maxSupportedTransactionVersion"] == 0
        # answer out of order, with one unknown signature
        body = [
            {"jsonrpc": "2.0", "id": 2, "result": {"blockTime": 3}},
            {"jsonrpc": "2.0", "id": 0, "result": {"blockTime": 1}},
            {"jsonrpc": "2.0", "id": 1, "result": None},
        ]
        return httpx.Response(200, json=body)

    async with client_for(handler) as rpc:
        txs = await rpc.get_parsed_transactions(["a", "b", "c"])
    assert txs == [{"blockTime": 1}, None, {"blockTime": 3}]


async def test_empty_batch_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    async with client_for(handler) as rpc:
        assert await rpc.get_parsed_transactions([]) == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(429, text="Too Many Requests"),
        httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "busy"}}),
        httpx.Response(200, text="<html>gateway</html>"),
    ],
)
async def test_failures_become_transient_fetch_errors(response):
    async with client_for(lambda request: response) as rpc:
        with pytest.raises(TransientFetchError):
            await rpc.get_signatures_for_address("addr")


async def test_error_inside_batch_is_transient():
    def handler(request):
        return httpx.Response(200, json=[{"jsonrpc": "2.0", "id": 0, "error": {"code": -32009, "message": "pruned"}}])

    async with client_for(handler) as rpc:
        with pytest.raises(TransientFetchError):
            await rpc.get_parsed_transactions(["a"])


async def test_transport_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with client_for(handler) as rpc:
        with pytest.raises(TransientFetchError):
            await rpc.get_parsed_transactions(["a"])
