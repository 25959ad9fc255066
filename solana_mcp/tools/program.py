"""
Read-side access to the Anchor state program's ``PlayerState`` accounts.

Player accounts live at the PDA derived from ``[b"player", authority]``. The
account body is Anchor-encoded: an 8-byte discriminator, the owner key, a
borsh string name and a one-byte level. Instructions that write to the program
are built and signed by the caller and relayed through ``send_transaction``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import struct
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from solders.pubkey import Pubkey as SolanaPubkey

from solana_mcp.errors import AccountMissingError, BlockchainError, ToolValidationError
from solana_mcp.registry import PUBLIC, ToolContext, ToolDefinition
from solana_mcp.solana_rpc import AccountNotFoundError
from solana_mcp.tools.validators import Pubkey

logger = logging.getLogger(__name__)

PLAYER_SEED = b"player"
PLAYER_STATE_DISCRIMINATOR = hashlib.sha256(b"account:PlayerState").digest()[:8]

_OWNER_OFFSET = 8
_NAME_OFFSET = _OWNER_OFFSET + 32
_NAME_DATA_OFFSET = _NAME_OFFSET + 4


class PlayerStateParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    authority: Pubkey = Field(..., description="Wallet that registered the player (Base58)")
    program_id: Optional[Pubkey] = Field(
        None, description="State program id; defaults to SOLANA_STATE_PROGRAM_ID"
    )


def parse_key(field: str, value: str) -> SolanaPubkey:
    try:
        return SolanaPubkey.from_string(value)
    except ValueError as exc:
        raise ToolValidationError(
            f"Invalid parameters: {field}: not a 32-byte public key",
            fields=[{"field": field, "message": "not a 32-byte public key"}],
        ) from exc


def find_player_address(authority: SolanaPubkey, program_id: SolanaPubkey) -> Tuple[SolanaPubkey, int]:
    return SolanaPubkey.find_program_address([PLAYER_SEED, bytes(authority)], program_id)


def decode_player_state(raw: bytes) -> Dict[str, Any]:
    """Decode an Anchor ``PlayerState`` body; raises BlockchainError on foreign data."""
    if len(raw) < _NAME_DATA_OFFSET or raw[:_OWNER_OFFSET] != PLAYER_STATE_DISCRIMINATOR:
        raise BlockchainError("Account does not hold a PlayerState")
    (name_length,) = struct.unpack_from("<I", raw, _NAME_OFFSET)
    level_offset = _NAME_DATA_OFFSET + name_length
    if len(raw) <= level_offset:
        raise BlockchainError("PlayerState account data is truncated")
    try:
        name = raw[_NAME_DATA_OFFSET:level_offset].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise BlockchainError("PlayerState name is not valid UTF-8") from exc
    return {
        "owner": str(SolanaPubkey.from_bytes(raw[_OWNER_OFFSET:_NAME_OFFSET])),
        "name": name,
        "level": raw[level_offset],
    }


def _account_bytes(account: Dict[str, Any]) -> bytes:
    data = account.get("data")
    encoded = data[0] if isinstance(data, list) and data else ""
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise BlockchainError("Account data is not valid base64") from exc


async def get_player_state(params: PlayerStateParams, ctx: ToolContext) -> Dict[str, Any]:
    program_text = params.program_id or ctx.config.state_program_id
    if not program_text:
        raise ToolValidationError(
            "Invalid parameters: program_id: required when SOLANA_STATE_PROGRAM_ID is not set",
            fields=[{"field": "program_id", "message": "required when SOLANA_STATE_PROGRAM_ID is not set"}],
        )
    program_id = parse_key("program_id", program_text)
    authority = parse_key("authority", params.authority)
    player, bump = find_player_address(authority, program_id)

    try:
        account = await ctx.client.get_account_info(str(player))
    except AccountNotFoundError as exc:
        raise AccountMissingError(
            f"No player registered for {params.authority}",
            context={"player": str(player), "programId": str(program_id)},
        ) from exc

    if account.get("owner") != str(program_id):
        raise BlockchainError(
            f"Account {player} is not owned by program {program_id}",
            context={"owner": account.get("owner")},
        )
    state = decode_player_state(_account_bytes(account))
    logger.debug("player state read player=%s level=%s", player, state["level"])
    return {
        "player": str(player),
        "bump": bump,
        "authority": params.authority,
        "programId": str(program_id),
        **state,
    }


GET_PLAYER_STATE = ToolDefinition(
    name="get_player_state",
    description="Read a player's registered name and level from the state program.",
    schema=PlayerStateParams,
    action=get_player_state,
    permissions=(PUBLIC,),
    update_context=lambda result, params: {
        "last_player": {"player": result["player"], "level": result["level"]}
    },
)
