"""Transaction tools: lookup, fee estimation, simulation and submission.

Transactions are built and signed by the caller; the gateway only relays
base64-encoded wire transactions and never sees a secret key.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from solana_mcp.config import LAMPORTS_PER_SOL
from solana_mcp.errors import BlockchainError, FeeCalculationError
from solana_mcp.registry import PUBLIC, ToolContext, ToolDefinition
from solana_mcp.solana_rpc import SolanaRpcError
from solana_mcp.tools.validators import Base64Payload, Signature

logger = logging.getLogger(__name__)


class SignatureParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    signature: Signature = Field(..., description="Transaction signature (Base58)")


class MessageParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: Base64Payload = Field(..., description="Compiled transaction message (base64)")


class NoParams(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TransactionParams(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    transaction: Base64Payload = Field(..., description="Signed wire transaction (base64)")
    skip_preflight: bool = Field(False, alias="skipPreflight")


def describe_error(err: Any) -> str:
    if isinstance(err, str):
        return err
    try:
        return json.dumps(err, sort_keys=True)
    except (TypeError, ValueError):
        return str(err)


def summarize_transaction(signature: str, tx: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if tx is None:
        return {"signature": signature, "found": False}
    meta = tx.get("meta") or {}
    message = (tx.get("transaction") or {}).get("message") or {}
    block_time = tx.get("blockTime")
    timestamp = (
        datetime.fromtimestamp(block_time, tz=timezone.utc).isoformat() if block_time else None
    )
    return {
        "signature": signature,
        "found": True,
        "slot": tx.get("slot"),
        "timestamp": timestamp,
        "success": meta.get("err") is None,
        "fee": int(meta.get("fee") or 0),
        "instructions": len(message.get("instructions") or []),
    }


async def simulate_signed_transaction(client: Any, transaction: str) -> Dict[str, Any]:
    """Simulate without committing; RPC failures are reported as an unsuccessful simulation."""
    try:
        value = await client.simulate_transaction(transaction)
    except SolanaRpcError as exc:
        logger.debug("simulation request failed: %s", exc)
        return {"success": False, "reason": str(exc)}

    logs = list(value.get("logs") or [])
    summary: Dict[str, Any] = {
        "success": value.get("err") is None,
        "logs": logs,
        "unitsConsumed": value.get("unitsConsumed"),
    }
    if value.get("err") is not None:
        summary["reason"] = describe_error(value["err"])
    return summary


async def get_latest_blockhash(_params: NoParams, ctx: ToolContext) -> Dict[str, Any]:
    value = await ctx.client.get_latest_blockhash()
    return {
        "blockhash": value.get("blockhash"),
        "lastValidBlockHeight": value.get("lastValidBlockHeight"),
    }


async def get_transaction(params: SignatureParams, ctx: ToolContext) -> Dict[str, Any]:
    tx = await ctx.client.get_transaction(params.signature)
    if tx is None:
        raise BlockchainError(f"Transaction {params.signature} not found")
    return summarize_transaction(params.signature, tx)


async def estimate_fee(params: MessageParams, ctx: ToolContext) -> Dict[str, Any]:
    try:
        fee = await ctx.client.get_fee_for_message(params.message)
    except SolanaRpcError as exc:
        raise FeeCalculationError(f"Failed to calculate fee: {exc}") from exc
    if fee is None:
        raise FeeCalculationError("Unable to calculate transaction fee")
    return {"fee": fee, "feeSol": fee / LAMPORTS_PER_SOL}


async def simulate_transaction(params: TransactionParams, ctx: ToolContext) -> Dict[str, Any]:
    return await simulate_signed_transaction(ctx.client, params.transaction)


async def send_transaction(params: TransactionParams, ctx: ToolContext) -> Dict[str, Any]:
    signature = await ctx.client.send_transaction(
        params.transaction, skip_preflight=params.skip_preflight
    )
    logger.info("transaction submitted signature=%s", signature, extra={"agent_id": ctx.agent_id})
    return {"signature": signature, "explorer": ctx.config.explorer_url(signature)}


GET_TRANSACTION = ToolDefinition(
    name="get_transaction",
    description="Look up a confirmed transaction by signature.",
    schema=SignatureParams,
    action=get_transaction,
    permissions=(PUBLIC,),
)

GET_LATEST_BLOCKHASH = ToolDefinition(
    name="get_latest_blockhash",
    description="Fetch a recent blockhash for building a transaction client-side.",
    schema=NoParams,
    action=get_latest_blockhash,
    permissions=(PUBLIC,),
)

ESTIMATE_FEE = ToolDefinition(
    name="estimate_fee",
    description="Estimate the fee (lamports) for a compiled transaction message.",
    schema=MessageParams,
    action=estimate_fee,
    permissions=(PUBLIC,),
)

SIMULATE_TRANSACTION = ToolDefinition(
    name="simulate_transaction",
    description="Simulate a signed transaction without committing it.",
    schema=TransactionParams,
    action=simulate_transaction,
    permissions=(PUBLIC,),
)

SEND_TRANSACTION = ToolDefinition(
    name="send_transaction",
    description="Submit a signed transaction (base64) and return its signature.",
    schema=TransactionParams,
    action=send_transaction,
    permissions=(PUBLIC,),
    simulate=simulate_transaction,
    update_context=lambda result, params: {"last_signature": result["signature"]},
)
