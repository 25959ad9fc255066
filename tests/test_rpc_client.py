import httpx
import pytest

from solana_mcp.config import GatewayConfig
from solana_mcp.solana_rpc.client import (
    AccountNotFoundError,
    InvalidRequestError,
    RateLimitedError,
    RpcUnreachableError,
    SolanaRpcClient,
    SolanaRpcError,
    TransactionRejectedError,
)

PUBKEY = "So11111111111111111111111111111111111111112"


class MockResponse:
    def __init__(self, status_code: int, json_body):
        self.status_code = status_code
        self._json = json_body

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json


class MockAsyncClient:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.closed = False

    async def post(self, path, json=None):
        self.calls.append({"path": path, "json": json})
        if not self.responses:
            raise RuntimeError("No mock responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self):
        self.closed = True


def rpc_result(result):
    return MockResponse(200, {"jsonrpc": "2.0", "id": 1, "result": result})


def rpc_error(code, message, data=None):
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return MockResponse(200, {"jsonrpc": "2.0", "id": 1, "error": error})


@pytest.mark.asyncio
async def test_get_balance_sends_json_rpc_payload():
    mock = MockAsyncClient([rpc_result({"context": {"slot": 1}, "value": 2500})])
    client = SolanaRpcClient(GatewayConfig(commitment="finalized"), async_client=mock)

    assert await client.get_balance(PUBKEY) == 2500
    payload = mock.calls[0]["json"]
    assert payload["jsonrpc"] == "2.0"
    assert payload["method"] == "getBalance"
    assert payload["params"] == [PUBKEY, {"commitment": "finalized"}]


@pytest.mark.asyncio
async def test_request_ids_increment():
    mock = MockAsyncClient([rpc_result({"value": 1}), rpc_result({"value": 2})])
    client = SolanaRpcClient(async_client=mock)
    await client.get_balance(PUBKEY)
    await client.get_balance(PUBKEY)
    assert [call["json"]["id"] for call in mock.calls] == [1, 2]


@pytest.mark.asyncio
async def test_rate_limited():
    client = SolanaRpcClient(async_client=MockAsyncClient([MockResponse(429, {})]))
    with pytest.raises(RateLimitedError):
        await client.get_balance(PUBKEY)


@pytest.mark.asyncio
async def test_preflight_failure_maps_to_rejected_with_logs():
    mock = MockAsyncClient(
        [rpc_error(-32002, "Transaction simulation failed: Blockhash not found", {"logs": ["log one"]})]
    )
    client = SolanaRpcClient(async_client=mock)
    with pytest.raises(TransactionRejectedError) as excinfo:
        await client.send_transaction("AQID")
    assert excinfo.value.logs == ["log one"]
    assert excinfo.value.code == -32002


@pytest.mark.asyncio
async def test_invalid_params_mapping():
    client = SolanaRpcClient(async_client=MockAsyncClient([rpc_error(-32602, "Invalid param: WrongSize")]))
    with pytest.raises(InvalidRequestError):
        await client.get_balance("bad")


@pytest.mark.asyncio
async def test_missing_account_raises_not_found():
    client = SolanaRpcClient(async_client=MockAsyncClient([rpc_result({"context": {}, "value": None})]))
    with pytest.raises(AccountNotFoundError):
        await client.get_account_info(PUBKEY)


@pytest.mark.asyncio
async def test_transport_failure_is_unreachable():
    mock = MockAsyncClient([httpx.ConnectError("connection refused")])
    client = SolanaRpcClient(async_client=mock)
    with pytest.raises(RpcUnreachableError):
        await client.get_latest_blockhash()


@pytest.mark.asyncio
async def test_http_error_without_json_body():
    mock = MockAsyncClient([MockResponse(502, ValueError("not json"))])
    client = SolanaRpcClient(async_client=mock)
    with pytest.raises(SolanaRpcError) as excinfo:
        await client.get_balance(PUBKEY)
    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_response_without_result_is_error():
    client = SolanaRpcClient(async_client=MockAsyncClient([MockResponse(200, {"jsonrpc": "2.0", "id": 1})]))
    with pytest.raises(SolanaRpcError):
        await client.get_balance(PUBKEY)


@pytest.mark.asyncio
async def test_fee_for_message_handles_expired_blockhash():
    mock = MockAsyncClient([rpc_result({"value": 5000}), rpc_result({"value": None})])
    client = SolanaRpcClient(async_client=mock)
    assert await client.get_fee_for_message("AQID") == 5000
    assert await client.get_fee_for_message("AQID") is None


@pytest.mark.asyncio
async def test_send_transaction_options_and_result():
    mock = MockAsyncClient([rpc_result("5" * 88), rpc_result({"unexpected": True})])
    client = SolanaRpcClient(async_client=mock)
    assert await client.send_transaction("AQID", skip_preflight=True) == "5" * 88
    options = mock.calls[0]["json"]["params"][1]
    assert options["skipPreflight"] is True
    assert options["encoding"] == "base64"
    with pytest.raises(SolanaRpcError):
        await client.send_transaction("AQID")


@pytest.mark.asyncio
async def test_simulate_and_multiple_accounts_unwrap_value():
    mock = MockAsyncClient(
        [
            rpc_result({"context": {}, "value": {"err": None, "logs": ["ok"]}}),
            rpc_result({"context": {}, "value": [{"lamports": 1}, None]}),
        ]
    )
    client = SolanaRpcClient(async_client=mock)
    assert (await client.simulate_transaction("AQID"))["logs"] == ["ok"]
    assert mock.calls[0]["json"]["params"][1]["sigVerify"] is False
    assert await client.get_multiple_accounts([PUBKEY, PUBKEY]) == [{"lamports": 1}, None]


@pytest.mark.asyncio
async def test_injected_client_is_not_closed():
    mock = MockAsyncClient([])
    client = SolanaRpcClient(async_client=mock)
    await client.aclose()
    assert mock.closed is False
