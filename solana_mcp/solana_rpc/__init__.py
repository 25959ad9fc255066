"""JSON-RPC client wrappers for Solana."""

from .client import (
    AccountNotFoundError,
    InvalidRequestError,
    RateLimitedError,
    RpcUnreachableError,
    SolanaRpcClient,
    SolanaRpcError,
    TransactionRejectedError,
)

__all__ = [
    "SolanaRpcClient",
    "SolanaRpcError",
    "AccountNotFoundError",
    "InvalidRequestError",
    "RateLimitedError",
    "RpcUnreachableError",
    "TransactionRejectedError",
]
