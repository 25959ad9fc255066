"""Fetch chain state and translate it into an AI-readable context document."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from solana_mcp.config import MAX_CONTEXT_ACCOUNTS, MAX_CONTEXT_TRANSACTIONS
from solana_mcp.registry import PUBLIC, ToolContext, ToolDefinition
from solana_mcp.tools.account import summarize_account
from solana_mcp.tools.transactions import summarize_transaction
from solana_mcp.tools.validators import Pubkey, Signature


class FetchContextParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    accounts: List[Pubkey] = Field(default_factory=list, max_length=MAX_CONTEXT_ACCOUNTS)
    transactions: List[Signature] = Field(default_factory=list, max_length=MAX_CONTEXT_TRANSACTIONS)

    @model_validator(mode="after")
    def _require_something(self) -> "FetchContextParams":
        if not self.accounts and not self.transactions:
            raise ValueError("at least one of accounts or transactions is required")
        return self


def translate_to_context(
    accounts: Optional[Dict[str, Optional[Dict[str, Any]]]] = None,
    transactions: Optional[Dict[str, Optional[Dict[str, Any]]]] = None,
) -> Dict[str, Any]:
    """Shape raw RPC payloads keyed by address/signature into context sections."""
    context: Dict[str, Any] = {}
    if accounts:
        context["accounts"] = [summarize_account(address, raw) for address, raw in accounts.items()]
    if transactions:
        context["transactions"] = [
            summarize_transaction(signature, raw) for signature, raw in transactions.items()
        ]
    return context


async def fetch_context(params: FetchContextParams, ctx: ToolContext) -> Dict[str, Any]:
    accounts: Dict[str, Optional[Dict[str, Any]]] = {}
    transactions: Dict[str, Optional[Dict[str, Any]]] = {}

    if params.accounts:
        raw_accounts = await ctx.client.get_multiple_accounts(params.accounts)
        for index, address in enumerate(params.accounts):
            accounts[address] = raw_accounts[index] if index < len(raw_accounts) else None

    if params.transactions:
        raw_txs = await asyncio.gather(
            *(ctx.client.get_transaction(signature) for signature in params.transactions)
        )
        transactions = dict(zip(params.transactions, raw_txs))

    return translate_to_context(accounts, transactions)


FETCH_CONTEXT = ToolDefinition(
    name="fetch_context",
    description="Fetch accounts and transactions and summarize them for an agent.",
    schema=FetchContextParams,
    action=fetch_context,
    permissions=(PUBLIC,),
)
