"""
Configuration helpers for the Solana MCP gateway.

This module centralizes RPC endpoint selection, default timeouts, runtime
behaviour and safety limits. Everything is read from the environment with
safe fallbacks; no secrets are needed because transactions are signed by the
caller before they reach the gateway.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

CLUSTER_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}

DEFAULT_CLUSTER = os.getenv("SOLANA_CLUSTER", "devnet")


def _resolve_rpc_url(cluster: str) -> str:
    """Map a cluster moniker to its public RPC URL; anything else is treated as a URL."""
    explicit = os.getenv("SOLANA_RPC_URL")
    if explicit:
        return explicit
    return CLUSTER_URLS.get(cluster, cluster)


def _load_float(env_var: str, default: float) -> float:
    raw = os.getenv(env_var)
    if raw:
        try:
            return float(raw)
        except ValueError:
            return default
    return default


def _load_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw:
        try:
            return int(raw)
        except ValueError:
            return default
    return default


def _load_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


DEFAULT_RPC_URL = _resolve_rpc_url(DEFAULT_CLUSTER)
DEFAULT_HTTP_TIMEOUT = _load_float("SOLANA_HTTP_TIMEOUT", 10.0)
DEFAULT_COMMITMENT = os.getenv("SOLANA_COMMITMENT", "confirmed")

# Runtime behaviour
DEFAULT_EXECUTION_TIMEOUT = _load_float("SOLANA_MCP_EXECUTION_TIMEOUT", 30.0)
DEFAULT_SIMULATE_BEFORE_EXECUTE = _load_bool("SOLANA_MCP_SIMULATE", True)
DEFAULT_MAX_MEMORY_ITEMS = _load_int("SOLANA_MCP_MAX_MEMORY_ITEMS", 100)
DEFAULT_MEMORY_FILE = os.getenv("SOLANA_MCP_MEMORY_FILE", "agent-memory.json")
DEFAULT_RECORD_VALIDATION_ERRORS = _load_bool("SOLANA_MCP_RECORD_VALIDATION_ERRORS", False)

# Safety limits
DEFAULT_MAX_BATCH_SIZE = _load_int("SOLANA_MCP_MAX_BATCH_SIZE", 5)
MAX_CONTEXT_ACCOUNTS = 20
MAX_CONTEXT_TRANSACTIONS = 20
MAX_AIRDROP_SOL = 2.0
LAMPORTS_PER_SOL = 1_000_000_000

# Anchor state program holding PlayerState accounts; unset disables the default.
DEFAULT_STATE_PROGRAM_ID = os.getenv("SOLANA_STATE_PROGRAM_ID") or None

DEFAULT_HOST = os.getenv("SOLANA_MCP_HOST", "0.0.0.0")
DEFAULT_PORT = _load_int("SOLANA_MCP_PORT", 3000)

LOG_LEVEL = os.getenv("SOLANA_MCP_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("SOLANA_MCP_LOG_FORMAT", "json")  # json or plain


@dataclass(slots=True)
class GatewayConfig:
    """Runtime configuration for the gateway and its Solana RPC access."""

    cluster: str = DEFAULT_CLUSTER
    rpc_url: str = DEFAULT_RPC_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    commitment: str = DEFAULT_COMMITMENT
    execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT
    simulate_before_execute: bool = DEFAULT_SIMULATE_BEFORE_EXECUTE
    max_memory_items: int = DEFAULT_MAX_MEMORY_ITEMS
    memory_file: str = DEFAULT_MEMORY_FILE
    record_validation_errors: bool = DEFAULT_RECORD_VALIDATION_ERRORS
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    max_context_accounts: int = MAX_CONTEXT_ACCOUNTS
    max_context_transactions: int = MAX_CONTEXT_TRANSACTIONS
    max_airdrop_sol: float = MAX_AIRDROP_SOL
    state_program_id: Optional[str] = DEFAULT_STATE_PROGRAM_ID
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT

    def explorer_url(self, signature: str) -> str:
        """Build a Solana Explorer link for a transaction signature."""
        if self.cluster == "mainnet-beta":
            return f"https://explorer.solana.com/tx/{signature}"
        if self.cluster in CLUSTER_URLS:
            return f"https://explorer.solana.com/tx/{signature}?cluster={self.cluster}"
        return f"https://explorer.solana.com/tx/{signature}?cluster=custom"


default_config = GatewayConfig()
