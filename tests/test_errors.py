import httpx

from solana_mcp.errors import (
    BlockchainError,
    ExecutionTimeoutError,
    InsufficientFundsError,
    SimulationError,
    ToolError,
    ToolValidationError,
    classify_error,
    translate_rpc_error,
)
from solana_mcp.solana_rpc import AccountNotFoundError, RpcUnreachableError, SolanaRpcError, TransactionRejectedError


def test_translate_known_patterns():
    assert translate_rpc_error("Blockhash not found") == "Transaction expired, please retry"
    assert translate_rpc_error("failed: custom program error: 0x1") == "The program returned an error"
    assert translate_rpc_error("something novel") == "something novel"


def test_tool_errors_pass_through_unchanged():
    original = ToolValidationError("Invalid parameters: pubkey: bad", fields=[{"field": "pubkey", "message": "bad"}])
    assert classify_error(original) is original
    assert original.to_dict() == {
        "code": "VALIDATION_ERROR",
        "message": "Invalid parameters: pubkey: bad",
        "fields": [{"field": "pubkey", "message": "bad"}],
    }


def test_insufficient_funds_detected():
    exc = SolanaRpcError("Transaction simulation failed: Attempt to debit an account but found no record of a prior credit.")
    error = classify_error(exc)
    assert isinstance(error, InsufficientFundsError)
    assert error.code == "INSUFFICIENT_FUNDS"
    assert error.message == "Insufficient funds for this transaction"
    assert "unknown" not in error.to_dict()["message"]
    assert error.__cause__ is exc


def test_rejected_transaction_becomes_simulation_error():
    exc = TransactionRejectedError(
        "Transaction simulation failed: Error processing Instruction 0",
        code=-32002,
        data={"logs": ["Program log: boom"]},
    )
    error = classify_error(exc)
    assert isinstance(error, SimulationError)
    assert error.simulation_result["logs"] == ["Program log: boom"]
    assert error.message == "Transaction simulation failed"


def test_timeout_exceptions_map_to_timeout():
    error = classify_error(TimeoutError("request timed out"))
    assert isinstance(error, ExecutionTimeoutError)
    assert error.code == "TIMEOUT"

    rpc = RpcUnreachableError("RPC node unreachable")
    rpc.__cause__ = httpx.ReadTimeout("read timed out")
    assert classify_error(rpc).code == "TIMEOUT"


def test_timeout_wording_in_other_errors_is_not_a_timeout():
    error = classify_error(ValueError("invalid timeout param"))
    assert error.code == "EXECUTION_ERROR"
    assert error.message == "invalid timeout param"


def test_rpc_failures_map_to_blockchain_error():
    unreachable = classify_error(RpcUnreachableError("RPC node unreachable"))
    assert isinstance(unreachable, BlockchainError)
    assert unreachable.message == "Solana RPC node unreachable."

    other = classify_error(SolanaRpcError("Node is unhealthy", code=-32005))
    assert other.code == "BLOCKCHAIN_ERROR"
    assert other.context == {"rpcCode": -32005}


def test_unknown_exceptions_become_execution_errors():
    error = classify_error(ValueError("boom"))
    assert type(error) is ToolError
    assert error.code == "EXECUTION_ERROR"
    assert error.to_dict() == {"code": "EXECUTION_ERROR", "message": "boom"}
    log_view = error.to_log_dict()
    assert log_view["cause"] == "ValueError('boom')"


def test_empty_message_uses_exception_name():
    assert classify_error(KeyError()).message == "KeyError"


def test_missing_account_maps_to_account_not_found():
    error = classify_error(AccountNotFoundError("Account abc not found."))
    assert error.code == "ACCOUNT_NOT_FOUND"
    assert error.message == "Account abc not found."
