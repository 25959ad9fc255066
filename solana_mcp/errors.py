"""
Structured errors raised by the dispatch and runtime layers.

Every failure that crosses the runtime boundary is a ``ToolError`` carrying a
stable ``code``; the HTTP layer turns it into an ``{"error": {code, message}}``
envelope without exposing tracebacks.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from solana_mcp.solana_rpc import (
    AccountNotFoundError,
    RpcUnreachableError,
    SolanaRpcError,
    TransactionRejectedError,
)

TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
PERMISSION_DENIED = "PERMISSION_DENIED"
AGENT_NOT_READY = "AGENT_NOT_READY"
SIMULATION_FAILED = "SIMULATION_FAILED"
TIMEOUT = "TIMEOUT"
EXECUTION_ERROR = "EXECUTION_ERROR"
INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"
FEE_CALCULATION_FAILED = "FEE_CALCULATION_FAILED"
BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
INVALID_REQUEST = "INVALID_REQUEST"
AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"


class ToolError(Exception):
    """Base class for every structured failure surfaced to callers."""

    code = EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing shape; never includes the traceback."""
        return {"code": self.code, "message": self.message}

    def to_log_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.context:
            payload["context"] = self.context
        if self.__cause__ is not None:
            payload["cause"] = repr(self.__cause__)
        return payload


class ToolNotFoundError(ToolError):
    code = TOOL_NOT_FOUND


class ToolValidationError(ToolError):
    """Raised when a tool's schema rejects the supplied parameters."""

    code = VALIDATION_ERROR

    def __init__(self, message: str, *, fields: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message, context={"fields": fields or []})
        self.fields = fields or []

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class PermissionDeniedError(ToolError):
    code = PERMISSION_DENIED


class AgentNotReadyError(ToolError):
    code = AGENT_NOT_READY


class AccountMissingError(ToolError):
    code = ACCOUNT_NOT_FOUND


class SimulationError(ToolError):
    """Raised when a pre-flight simulation predicts failure."""

    code = SIMULATION_FAILED

    def __init__(self, message: str, simulation_result: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, context={"simulationResult": simulation_result or {}})
        self.simulation_result = simulation_result or {}


class ExecutionTimeoutError(ToolError):
    code = TIMEOUT


class InsufficientFundsError(ToolError):
    code = INSUFFICIENT_FUNDS

    def __init__(
        self,
        available: Any = "unknown",
        required: Any = "unknown",
        *,
        message: Optional[str] = None,
    ) -> None:
        super().__init__(
            message or f"Insufficient funds. Available: {available} SOL, Required: {required} SOL",
            context={"available": available, "required": required},
        )
        self.available = available
        self.required = required


class BlockchainError(ToolError):
    code = BLOCKCHAIN_ERROR


class FeeCalculationError(ToolError):
    code = FEE_CALCULATION_FAILED


class BatchTooLargeError(ToolError):
    code = BATCH_TOO_LARGE


class InvalidRequestError(ToolError):
    code = INVALID_REQUEST


# Substring -> caller-friendly message. Order matters: first match wins.
RPC_ERROR_PATTERNS = (
    ("Attempt to debit an account but", "Insufficient funds for this transaction"),
    ("insufficient funds", "Insufficient funds for this transaction"),
    ("invalid program id", "Invalid program address"),
    (
        "Cross-program invocation with unauthorized signer or writable account",
        "Permission denied to modify the account",
    ),
    ("custom program error: 0x", "The program returned an error"),
    ("Transaction simulation failed", "Transaction simulation failed"),
    ("Blockhash not found", "Transaction expired, please retry"),
    ("Signature verification failed", "Invalid signature"),
)


def translate_rpc_error(message: str) -> str:
    """Map raw RPC error text to a readable message, or return it unchanged."""
    for pattern, translation in RPC_ERROR_PATTERNS:
        if pattern in message:
            return translation
    return message


def _is_insufficient_funds(message: str) -> bool:
    return "Attempt to debit an account but" in message or "insufficient funds" in message.lower()


def _is_timeout(exc: BaseException, lowered: str) -> bool:
    # Free-form text such as "invalid timeout param" is not a timeout.
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return True
    if isinstance(exc.__cause__, httpx.TimeoutException):
        return True
    return isinstance(exc, SolanaRpcError) and ("timeout" in lowered or "timed out" in lowered)


def classify_error(exc: BaseException) -> ToolError:
    """Translate any exception raised during execution into a ``ToolError``."""
    if isinstance(exc, ToolError):
        return exc

    message = str(exc) or type(exc).__name__
    lowered = message.lower()

    if _is_insufficient_funds(message):
        error: ToolError = InsufficientFundsError(message=translate_rpc_error(message))
    elif isinstance(exc, TransactionRejectedError) or "transaction simulation failed" in lowered:
        result: Dict[str, Any] = {"reason": message}
        if isinstance(exc, TransactionRejectedError):
            result["logs"] = exc.logs
        error = SimulationError(translate_rpc_error(message), result)
    elif _is_timeout(exc, lowered):
        error = ExecutionTimeoutError("The operation timed out. Please try again.")
    elif isinstance(exc, AccountNotFoundError):
        error = AccountMissingError(message)
    elif isinstance(exc, RpcUnreachableError):
        error = BlockchainError("Solana RPC node unreachable.")
    elif isinstance(exc, SolanaRpcError):
        error = BlockchainError(translate_rpc_error(message), context={"rpcCode": exc.code})
    else:
        error = ToolError(translate_rpc_error(message), code=EXECUTION_ERROR)
    error.__cause__ = exc
    return error
