"""Solana tool descriptors exposed through the MCP gateway."""

from typing import List

from solana_mcp.registry import ToolDefinition, ToolRegistry

from .account import GET_ACCOUNT_INFO, GET_BALANCE, REQUEST_AIRDROP
from .context import FETCH_CONTEXT
from .program import GET_PLAYER_STATE
from .transactions import (
    ESTIMATE_FEE,
    GET_LATEST_BLOCKHASH,
    GET_TRANSACTION,
    SEND_TRANSACTION,
    SIMULATE_TRANSACTION,
)
from . import validators

DEFAULT_TOOLS: List[ToolDefinition] = [
    GET_BALANCE,
    GET_ACCOUNT_INFO,
    GET_TRANSACTION,
    FETCH_CONTEXT,
    GET_LATEST_BLOCKHASH,
    ESTIMATE_FEE,
    SIMULATE_TRANSACTION,
    SEND_TRANSACTION,
    GET_PLAYER_STATE,
    REQUEST_AIRDROP,
]


def build_default_registry() -> ToolRegistry:
    """Registry of every shipped tool; built once by the process entry point."""
    return ToolRegistry(DEFAULT_TOOLS)


__all__ = [
    "DEFAULT_TOOLS",
    "build_default_registry",
    "GET_BALANCE",
    "GET_ACCOUNT_INFO",
    "GET_TRANSACTION",
    "FETCH_CONTEXT",
    "GET_LATEST_BLOCKHASH",
    "ESTIMATE_FEE",
    "SIMULATE_TRANSACTION",
    "SEND_TRANSACTION",
    "GET_PLAYER_STATE",
    "REQUEST_AIRDROP",
    "validators",
]
