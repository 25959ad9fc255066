"""
Thin JSON-RPC client for the Solana RPC methods the gateway relies on.

Transactions arrive already signed; this client only relays them, simulates
them, and reads chain state. RPC failures are mapped to internal exceptions
that the error taxonomy can translate into structured tool errors.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from solana_mcp.config import GatewayConfig, default_config

logger = logging.getLogger(__name__)

# JSON-RPC error codes emitted by Solana validators.
SEND_TRANSACTION_PREFLIGHT_FAILURE = -32002
TRANSACTION_SIGNATURE_VERIFICATION_FAILURE = -32003
BLOCK_NOT_AVAILABLE = -32004
NODE_UNHEALTHY = -32005
INVALID_PARAMS = -32602


class SolanaRpcError(Exception):
    """Base exception for Solana RPC errors."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        status_code: Optional[int] = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.data = data


class RpcUnreachableError(SolanaRpcError):
    """Raised when the RPC endpoint cannot be reached."""


class RateLimitedError(SolanaRpcError):
    """Raised when the RPC endpoint throttles the request."""


class InvalidRequestError(SolanaRpcError):
    """Raised when the node rejects parameters (bad key, bad encoding)."""


class AccountNotFoundError(SolanaRpcError):
    """Raised when an account does not exist on-chain."""


class TransactionRejectedError(SolanaRpcError):
    """Raised when preflight or signature verification rejects a transaction."""

    @property
    def logs(self) -> List[str]:
        if isinstance(self.data, dict) and isinstance(self.data.get("logs"), list):
            return [str(line) for line in self.data["logs"]]
        return []


class SolanaRpcClient:
    """Async client for the limited Solana JSON-RPC surface."""

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or default_config
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None
        self._ids = itertools.count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.rpc_url, timeout=self.config.http_timeout
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _map_error(self, error: Dict[str, Any], status_code: int) -> SolanaRpcError:
        code = error.get("code")
        message = str(error.get("message") or "Solana RPC error.")
        data = error.get("data")
        lowered = message.lower()

        if code in {SEND_TRANSACTION_PREFLIGHT_FAILURE, TRANSACTION_SIGNATURE_VERIFICATION_FAILURE}:
            return TransactionRejectedError(message, code=code, status_code=status_code, data=data)
        if code == INVALID_PARAMS or "invalid param" in lowered:
            return InvalidRequestError(message, code=code, status_code=status_code, data=data)
        if "could not find account" in lowered or "account not found" in lowered:
            return AccountNotFoundError(message, code=code, status_code=status_code, data=data)
        return SolanaRpcError(message, code=code, status_code=status_code, data=data)

    def _process_response(self, response: httpx.Response, method: str) -> Any:
        if response.status_code == 429:
            raise RateLimitedError("RPC rate limit exceeded.", status_code=429)

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            raise self._map_error(body["error"], response.status_code)

        if response.status_code >= 400:
            raise SolanaRpcError(
                f"RPC request failed with HTTP {response.status_code}.",
                status_code=response.status_code,
            )

        if not isinstance(body, dict) or "result" not in body:
            raise SolanaRpcError("Unexpected response from RPC node.", status_code=response.status_code)

        return body["result"]

    async def _rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        client = await self._get_client()
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = await client.post("", json=payload)
        except httpx.RequestError as exc:
            logger.warning("Solana RPC unreachable for method %s", method)
            raise RpcUnreachableError("RPC node unreachable") from exc
        return self._process_response(response, method)

    async def get_balance(self, pubkey: str) -> int:
        """Return the lamport balance of an account."""
        result = await self._rpc("getBalance", [pubkey, {"commitment": self.config.commitment}])
        if isinstance(result, dict):
            return int(result.get("value") or 0)
        return int(result or 0)

    async def get_account_info(self, pubkey: str, *, encoding: str = "base64") -> Dict[str, Any]:
        """Fetch one account; raises AccountNotFoundError when it does not exist."""
        result = await self._rpc(
            "getAccountInfo",
            [pubkey, {"encoding": encoding, "commitment": self.config.commitment}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        if value is None:
            raise AccountNotFoundError(f"Account {pubkey} not found.")
        return value

    async def get_multiple_accounts(self, pubkeys: List[str]) -> List[Optional[Dict[str, Any]]]:
        """Fetch several accounts at once; missing accounts come back as None."""
        result = await self._rpc(
            "getMultipleAccounts",
            [pubkeys, {"encoding": "base64", "commitment": self.config.commitment}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        return list(value or [])

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Fetch a confirmed transaction, or None when the node has no record of it."""
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": self.config.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def get_fee_for_message(self, message: str) -> Optional[int]:
        """Return the fee in lamports for a base64 message, or None if the blockhash expired."""
        result = await self._rpc(
            "getFeeForMessage", [message, {"commitment": self.config.commitment}]
        )
        value = result.get("value") if isinstance(result, dict) else result
        return None if value is None else int(value)

    async def get_latest_blockhash(self) -> Dict[str, Any]:
        result = await self._rpc("getLatestBlockhash", [{"commitment": self.config.commitment}])
        return result.get("value") if isinstance(result, dict) else {}

    async def simulate_transaction(self, transaction: str) -> Dict[str, Any]:
        """Simulate a base64 transaction without committing it."""
        result = await self._rpc(
            "simulateTransaction",
            [
                transaction,
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "commitment": self.config.commitment,
                },
            ],
        )
        return result.get("value") if isinstance(result, dict) else {}

    async def send_transaction(self, transaction: str, *, skip_preflight: bool = False) -> str:
        """Submit a signed base64 transaction and return its signature."""
        result = await self._rpc(
            "sendTransaction",
            [
                transaction,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self.config.commitment,
                },
            ],
        )
        if not isinstance(result, str):
            raise SolanaRpcError("Unexpected response from RPC node.")
        return result

    async def request_airdrop(self, pubkey: str, lamports: int) -> str:
        result = await self._rpc("requestAirdrop", [pubkey, lamports])
        if not isinstance(result, str):
            raise SolanaRpcError("Unexpected response from RPC node.")
        return result
