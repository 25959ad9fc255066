"""Minimal sanity checks for the Solana MCP tools against a live cluster."""

from __future__ import annotations

import asyncio
import os
import sys
import tempfile

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from solana_mcp.config import default_config  # noqa: E402
from solana_mcp.errors import ToolError  # noqa: E402
from solana_mcp.memory_store import MemoryStore  # noqa: E402
from solana_mcp.runtime import AgentManager  # noqa: E402
from solana_mcp.solana_rpc import SolanaRpcClient  # noqa: E402
from solana_mcp.tools import build_default_registry  # noqa: E402

# Wrapped SOL mint; always present on every cluster. Override via env.
SAMPLE_PUBKEY = os.getenv("SOLANA_SAMPLE_PUBKEY", "So11111111111111111111111111111111111111112")
# Optional transaction signature for the lookup step.
SAMPLE_SIGNATURE = os.getenv("SOLANA_SAMPLE_SIGNATURE")


async def main() -> None:
    print("RPC endpoint:", default_config.rpc_url)
    client = SolanaRpcClient(default_config)
    with tempfile.TemporaryDirectory() as workdir:
        memory = MemoryStore(os.path.join(workdir, "agent-memory.json"))
        agents = AgentManager(build_default_registry(), memory, client=client)
        runtime = agents.get_or_create("sanity-check")
        try:
            print("Balance:", await runtime.execute("get_balance", {"pubkey": SAMPLE_PUBKEY}))
            print("Account:", await runtime.execute("get_account_info", {"pubkey": SAMPLE_PUBKEY}))
            print("Blockhash:", await runtime.execute("get_latest_blockhash", {}))

            context_params = {"accounts": [SAMPLE_PUBKEY]}
            if SAMPLE_SIGNATURE:
                context_params["transactions"] = [SAMPLE_SIGNATURE]
            print("Context:", await runtime.execute("fetch_context", context_params))

            try:
                await runtime.execute("get_balance", {"pubkey": "not-a-key"})
            except ToolError as exc:
                print("Expected validation failure:", exc.to_dict())

            print("Stats:", runtime.get_stats())
            print("Memory records:", len(await runtime.load_memory()))
        finally:
            await agents.shutdown_all()
            await client.aclose()


if __name__ == "__main__":
    asyncio.run(main())
