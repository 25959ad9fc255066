"""Account-related tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from solana_mcp.config import LAMPORTS_PER_SOL, MAX_AIRDROP_SOL
from solana_mcp.registry import ADMIN, PUBLIC, ToolContext, ToolDefinition
from solana_mcp.tools.validators import Pubkey

logger = logging.getLogger(__name__)


class PubkeyParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pubkey: Pubkey = Field(..., description="Account public key (Base58)")


class AccountInfoParams(PubkeyParams):
    include_data: bool = Field(False, description="Include base64 account data in the result")


class AirdropParams(PubkeyParams):
    amount: float = Field(..., gt=0, le=MAX_AIRDROP_SOL, description="Amount of SOL to request")


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def summarize_account(address: str, account: Optional[Dict[str, Any]], *, include_data: bool = False) -> Dict[str, Any]:
    """Reduce a raw RPC account to the fields an agent can reason about."""
    if account is None:
        return {"address": address, "exists": False}
    data = account.get("data")
    encoded = data[0] if isinstance(data, list) and data else ""
    size = account.get("space")
    if size is None:
        # Base64 expands 3 bytes into 4 characters.
        size = (len(encoded) * 3) // 4 - encoded.count("=", -2) if encoded else 0
    summary: Dict[str, Any] = {
        "address": address,
        "exists": True,
        "lamports": int(account.get("lamports") or 0),
        "owner": account.get("owner"),
        "executable": bool(account.get("executable")),
        "rentEpoch": account.get("rentEpoch"),
        "dataSize": int(size),
    }
    if include_data:
        summary["data"] = encoded
    return summary


async def get_balance(params: PubkeyParams, ctx: ToolContext) -> Dict[str, Any]:
    lamports = await ctx.client.get_balance(params.pubkey)
    return {"pubkey": params.pubkey, "balance": lamports_to_sol(lamports), "lamports": lamports}


async def get_account_info(params: AccountInfoParams, ctx: ToolContext) -> Dict[str, Any]:
    account = await ctx.client.get_account_info(params.pubkey)
    return summarize_account(params.pubkey, account, include_data=params.include_data)


async def request_airdrop(params: AirdropParams, ctx: ToolContext) -> Dict[str, Any]:
    lamports = int(round(params.amount * LAMPORTS_PER_SOL))
    signature = await ctx.client.request_airdrop(params.pubkey, lamports)
    logger.info("airdrop requested pubkey=%s lamports=%s", params.pubkey, lamports)
    return {"signature": signature, "lamports": lamports, "explorer": ctx.config.explorer_url(signature)}


GET_BALANCE = ToolDefinition(
    name="get_balance",
    description="Get the SOL balance of a wallet.",
    schema=PubkeyParams,
    action=get_balance,
    permissions=(PUBLIC,),
    update_context=lambda result, params: {
        "last_balance": {"pubkey": result["pubkey"], "balance": result["balance"]}
    },
)

GET_ACCOUNT_INFO = ToolDefinition(
    name="get_account_info",
    description="Fetch an account's owner, lamports and data size.",
    schema=AccountInfoParams,
    action=get_account_info,
    permissions=(PUBLIC,),
)

REQUEST_AIRDROP = ToolDefinition(
    name="request_airdrop",
    description="Request a devnet/testnet SOL airdrop to a wallet.",
    schema=AirdropParams,
    action=request_airdrop,
    permissions=(ADMIN,),
)
