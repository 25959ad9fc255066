"""Shared validation helpers for Solana MCP tools."""

from __future__ import annotations

import base64
import binascii
import re
from typing import Annotated, Optional

from pydantic import AfterValidator

BASE58_REGEX = re.compile(r"^[1-9A-HJ-NP-Za-km-z]+$")

# Base58-encoded 32-byte public keys are 32-44 characters long.
PUBKEY_MIN_LENGTH = 32
PUBKEY_MAX_LENGTH = 44
PUBKEY_REGEX = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

# Base58-encoded 64-byte signatures.
SIGNATURE_MIN_LENGTH = 64
SIGNATURE_MAX_LENGTH = 88

# Solana packets cap a serialized transaction at 1232 bytes.
MAX_TRANSACTION_BYTES = 1232


def is_base58_string(value: Optional[str], *, min_length: int = 1, max_length: Optional[int] = None) -> bool:
    """Validate a Base58 string using a simple character check and length bounds."""
    if not value or not isinstance(value, str):
        return False
    if not BASE58_REGEX.fullmatch(value):
        return False
    length = len(value)
    if length < min_length:
        return False
    if max_length is not None and length > max_length:
        return False
    return True


def is_valid_pubkey(value: Optional[str]) -> bool:
    """Format check for a Base58 public key; does not verify the key is on the curve."""
    if not value or not isinstance(value, str):
        return False
    return bool(PUBKEY_REGEX.fullmatch(value.strip()))


def is_valid_signature(value: Optional[str]) -> bool:
    return is_base58_string(value, min_length=SIGNATURE_MIN_LENGTH, max_length=SIGNATURE_MAX_LENGTH)


def decode_base64(value: Optional[str], *, max_bytes: int = MAX_TRANSACTION_BYTES) -> Optional[bytes]:
    """Decode strict base64, returning None for malformed, empty or oversized input."""
    if not value or not isinstance(value, str):
        return None
    try:
        raw = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError):
        return None
    if not raw or len(raw) > max_bytes:
        return None
    return raw


def clamp_limit(value: Optional[int], *, default: int, max_value: int) -> int:
    """Clamp limit-style integers to configured bounds."""
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if parsed < 0:
        return default
    return min(parsed, max_value)


def _check_pubkey(value: str) -> str:
    value = value.strip()
    if not is_valid_pubkey(value):
        raise ValueError("must be a Base58 public key (32-44 characters)")
    return value


def _check_signature(value: str) -> str:
    value = value.strip()
    if not is_valid_signature(value):
        raise ValueError("must be a Base58 transaction signature")
    return value


def _check_base64(value: str) -> str:
    value = value.strip()
    if decode_base64(value) is None:
        raise ValueError(f"must be non-empty base64 of at most {MAX_TRANSACTION_BYTES} bytes")
    return value


Pubkey = Annotated[str, AfterValidator(_check_pubkey)]
Signature = Annotated[str, AfterValidator(_check_signature)]
Base64Payload = Annotated[str, AfterValidator(_check_base64)]
