import base64
import os
import sys

import pytest

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from pydantic import BaseModel  # noqa: E402

from solana_mcp.memory_store import MemoryStore  # noqa: E402
from solana_mcp.metrics import default_metrics  # noqa: E402
from solana_mcp.registry import ToolDefinition  # noqa: E402

PUBKEY = "So11111111111111111111111111111111111111112"
OTHER_PUBKEY = "11111111111111111111111111111111"
SIGNATURE = "5" * 88
SIGNED_TX = base64.b64encode(b"\x01" * 200).decode("ascii")


class EchoParams(BaseModel):
    message: str


async def echo_action(params, _ctx):
    return {"echo": params.message}


ECHO = ToolDefinition(
    name="echo",
    description="Return the message unchanged.",
    schema=EchoParams,
    action=echo_action,
)


class StubSolanaClient:
    """In-memory stand-in for SolanaRpcClient; records every call."""

    def __init__(self, *, lamports=1_500_000_000, simulation=None, fee=5000):
        self.lamports = lamports
        self.simulation = simulation if simulation is not None else {"err": None, "logs": ["ok"], "unitsConsumed": 150}
        self.fee = fee
        self.calls = []
        self.closed = False

    async def get_balance(self, pubkey):
        self.calls.append(("get_balance", pubkey))
        return self.lamports

    async def get_account_info(self, pubkey):
        self.calls.append(("get_account_info", pubkey))
        return {"lamports": self.lamports, "owner": OTHER_PUBKEY, "executable": False, "rentEpoch": 0, "space": 0, "data": ["", "base64"]}

    async def get_multiple_accounts(self, pubkeys):
        self.calls.append(("get_multiple_accounts", list(pubkeys)))
        return [{"lamports": self.lamports, "owner": OTHER_PUBKEY, "data": ["AAAA", "base64"]}] + [None] * (len(pubkeys) - 1)

    async def get_transaction(self, signature):
        self.calls.append(("get_transaction", signature))
        return {
            "slot": 42,
            "blockTime": 1_700_000_000,
            "meta": {"err": None, "fee": 5000},
            "transaction": {"message": {"instructions": [{}, {}]}},
        }

    async def get_fee_for_message(self, message):
        self.calls.append(("get_fee_for_message", message))
        return self.fee

    async def get_latest_blockhash(self):
        self.calls.append(("get_latest_blockhash",))
        return {"blockhash": "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N", "lastValidBlockHeight": 100}

    async def simulate_transaction(self, transaction):
        self.calls.append(("simulate_transaction", transaction))
        return self.simulation

    async def send_transaction(self, transaction, *, skip_preflight=False):
        self.calls.append(("send_transaction", transaction, skip_preflight))
        return SIGNATURE

    async def request_airdrop(self, pubkey, lamports):
        self.calls.append(("request_airdrop", pubkey, lamports))
        return SIGNATURE

    async def aclose(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_metrics():
    default_metrics.reset()
    yield
    default_metrics.reset()


@pytest.fixture
def memory_path(tmp_path):
    return tmp_path / "agent-memory.json"


@pytest.fixture
def memory(memory_path):
    return MemoryStore(memory_path)


@pytest.fixture
def stub_client():
    return StubSolanaClient()
