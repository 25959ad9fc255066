import base64
import struct

import pytest
from fastapi.testclient import TestClient
from solders.pubkey import Pubkey as SolanaPubkey

from conftest import OTHER_PUBKEY, PUBKEY
from solana_mcp.config import GatewayConfig
from solana_mcp.errors import AccountMissingError, BlockchainError, ToolValidationError
from solana_mcp.memory_store import MemoryStore
from solana_mcp.registry import ToolContext, ToolRegistry
from solana_mcp.runtime import AgentRuntime, RuntimeConfig
from solana_mcp.server import create_app
from solana_mcp.solana_rpc import AccountNotFoundError
from solana_mcp.tools import GET_PLAYER_STATE
from solana_mcp.tools.program import PLAYER_STATE_DISCRIMINATOR, decode_player_state

PROGRAM_ID = "Stake11111111111111111111111111111111111111"


def player_address(authority=PUBKEY, program_id=PROGRAM_ID):
    return SolanaPubkey.find_program_address(
        [b"player", bytes(SolanaPubkey.from_string(authority))],
        SolanaPubkey.from_string(program_id),
    )


def player_data(owner=PUBKEY, name="alice", level=3):
    encoded = name.encode("utf-8")
    return (
        PLAYER_STATE_DISCRIMINATOR
        + bytes(SolanaPubkey.from_string(owner))
        + struct.pack("<I", len(encoded))
        + encoded
        + bytes([level])
    )


class StubProgramClient:
    def __init__(self, accounts=None):
        self.accounts = accounts or {}
        self.calls = []

    async def get_account_info(self, pubkey):
        self.calls.append(pubkey)
        if pubkey not in self.accounts:
            raise AccountNotFoundError(f"Account {pubkey} not found.")
        return self.accounts[pubkey]


def program_account(raw, owner=PROGRAM_ID):
    return {"lamports": 1_000_000, "owner": owner, "data": [base64.b64encode(raw).decode("ascii"), "base64"]}


def make_ctx(client, **config):
    return ToolContext(agent_id="agent-1", client=client, config=GatewayConfig(cluster="devnet", **config))


async def run(params, client, **config):
    return await GET_PLAYER_STATE.action(GET_PLAYER_STATE.validate(params), make_ctx(client, **config))


@pytest.mark.asyncio
async def test_reads_player_at_derived_address():
    player, bump = player_address()
    client = StubProgramClient({str(player): program_account(player_data())})

    result = await run({"authority": PUBKEY, "program_id": PROGRAM_ID}, client)

    assert client.calls == [str(player)]
    assert result == {
        "player": str(player),
        "bump": bump,
        "authority": PUBKEY,
        "programId": PROGRAM_ID,
        "owner": PUBKEY,
        "name": "alice",
        "level": 3,
    }
    assert GET_PLAYER_STATE.update_context(result, None) == {"last_player": {"player": str(player), "level": 3}}


@pytest.mark.asyncio
async def test_program_id_falls_back_to_config():
    player, _bump = player_address()
    client = StubProgramClient({str(player): program_account(player_data(level=7))})
    result = await run({"authority": PUBKEY}, client, state_program_id=PROGRAM_ID)
    assert result["level"] == 7


@pytest.mark.asyncio
async def test_missing_program_id_is_a_validation_error():
    client = StubProgramClient()
    with pytest.raises(ToolValidationError) as excinfo:
        await run({"authority": PUBKEY}, client, state_program_id=None)
    assert excinfo.value.fields[0]["field"] == "program_id"
    assert client.calls == []


@pytest.mark.asyncio
async def test_key_that_is_not_32_bytes_is_rejected():
    with pytest.raises(ToolValidationError) as excinfo:
        await run({"authority": "1" * 44, "program_id": PROGRAM_ID}, StubProgramClient())
    assert excinfo.value.fields[0]["field"] == "authority"


@pytest.mark.asyncio
async def test_unregistered_player_is_account_not_found():
    player, _bump = player_address()
    with pytest.raises(AccountMissingError) as excinfo:
        await run({"authority": PUBKEY, "program_id": PROGRAM_ID}, StubProgramClient())
    assert excinfo.value.code == "ACCOUNT_NOT_FOUND"
    assert excinfo.value.context["player"] == str(player)


@pytest.mark.asyncio
async def test_account_owned_by_another_program_is_rejected():
    player, _bump = player_address()
    client = StubProgramClient({str(player): program_account(player_data(), owner=OTHER_PUBKEY)})
    with pytest.raises(BlockchainError) as excinfo:
        await run({"authority": PUBKEY, "program_id": PROGRAM_ID}, client)
    assert "not owned by program" in excinfo.value.message


def test_decode_rejects_foreign_or_truncated_data():
    with pytest.raises(BlockchainError):
        decode_player_state(b"\x00" * 8 + player_data()[8:])
    with pytest.raises(BlockchainError):
        decode_player_state(player_data()[:-1])
    with pytest.raises(BlockchainError):
        decode_player_state(PLAYER_STATE_DISCRIMINATOR[:4])


def test_decode_handles_empty_name():
    assert decode_player_state(player_data(name="", level=1)) == {"owner": PUBKEY, "name": "", "level": 1}


@pytest.mark.asyncio
async def test_missing_player_through_runtime_is_recorded(memory):
    runtime = AgentRuntime(
        "agent-1",
        ToolRegistry([GET_PLAYER_STATE]),
        memory,
        client=StubProgramClient(),
        config=RuntimeConfig(execution_timeout=1.0, simulate_before_execute=True),
        gateway_config=GatewayConfig(cluster="devnet", state_program_id=PROGRAM_ID),
    )
    with pytest.raises(AccountMissingError):
        await runtime.execute("get_player_state", {"authority": PUBKEY})
    records = await memory.get("agent-1")
    assert records[-1]["error"]["code"] == "ACCOUNT_NOT_FOUND"


def test_missing_player_route_returns_404(tmp_path):
    config = GatewayConfig(memory_file=str(tmp_path / "memory.json"), state_program_id=PROGRAM_ID)
    app = create_app(config, memory=MemoryStore(config.memory_file), client=StubProgramClient())
    resp = TestClient(app).post("/mcp", json={"tool": "get_player_state", "params": {"authority": PUBKEY}})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "ACCOUNT_NOT_FOUND"
