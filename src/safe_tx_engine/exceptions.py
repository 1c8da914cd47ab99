"""Exception hierarchy for safe-tx-engine.

All engine exceptions inherit from SafeTxEngineError, enabling:
- Consistent handling at the dispatcher boundary
- Structured error payloads with machine-readable codes
- A retry hint for callers offering a "retry" action

Usage:
    from safe_tx_engine.exceptions import SafeTxEngineError, RelayRejected

    try:
        record = await dispatcher.dispatch(ExecutionMethod.WITH_RELAY, request)
    except SafeTxEngineError as e:
        show_error(e.to_dict())

All exceptions have:
- error_code: Machine-readable error code (e.g., "RELAY_REJECTED")
- message: Human-readable error message
- details: Optional additional context dictionary
- retryable: Whether re-invoking the same path may succeed
- to_dict(): Convert to a serializable payload
"""
from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SafeTxEngineError(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "SAFE_TX_ENGINE_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable payload."""
        result = {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(SafeTxEngineError):
    """Missing or invalid engine configuration."""

    error_code = "CONFIGURATION_ERROR"


# =============================================================================
# Dispatch errors (raised before any network call)
# =============================================================================

class SignerUnavailable(SafeTxEngineError):
    """No signer record, or the signer's secret could not be obtained."""

    error_code = "SIGNER_UNAVAILABLE"
    retryable = True

    def __init__(self, message: str, signer_address: Optional[str] = None) -> None:
        super().__init__(
            message,
            details={"signer_address": signer_address} if signer_address else None,
        )
        self.signer_address = signer_address


class WrongSignerType(SafeTxEngineError):
    """The resolved signer is not of the type the backend requires."""

    error_code = "WRONG_SIGNER_TYPE"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Expected {expected} signer but got different type",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class MissingDerivationPath(SafeTxEngineError):
    """A hardware signer record carries no derivation path."""

    error_code = "MISSING_DERIVATION_PATH"

    def __init__(self, signer_address: str) -> None:
        super().__init__(
            "Ledger signer missing derivation path",
            details={"signer_address": signer_address},
        )
        self.signer_address = signer_address


# =============================================================================
# Gateway / relay errors
# =============================================================================

class GatewayError(SafeTxEngineError):
    """The transaction service gateway returned an error."""

    error_code = "GATEWAY_ERROR"
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(
            message,
            details={"status_code": status_code} if status_code is not None else None,
        )
        self.status_code = status_code


class SafeTransactionNotFound(SafeTxEngineError):
    """Transaction details could not be retrieved or re-derived."""

    error_code = "SAFE_TRANSACTION_NOT_FOUND"

    def __init__(self, tx_id: str, reason: str = "Transaction not found") -> None:
        super().__init__(f"{reason}: {tx_id}", details={"tx_id": tx_id})
        self.tx_id = tx_id


class RelayRejected(SafeTxEngineError):
    """The relay accepted the request but returned no task id."""

    error_code = "RELAY_REJECTED"
    retryable = True

    def __init__(self, message: str = "Transaction could not be relayed") -> None:
        super().__init__(message)


class RelayFailed(SafeTxEngineError):
    """A relay task reached a failing terminal state or timed out."""

    error_code = "RELAY_FAILED"
    retryable = True

    def __init__(self, task_id: str, task_state: Optional[str] = None) -> None:
        reason = task_state or "timeout"
        super().__init__(
            f"Relay task {task_id} failed ({reason})",
            details={"task_id": task_id, "task_state": task_state},
        )
        self.task_id = task_id
        self.task_state = task_state


# =============================================================================
# Chain errors
# =============================================================================

class RPCError(SafeTxEngineError):
    """JSON-RPC error from a chain node."""

    error_code = "RPC_ERROR"
    retryable = True

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message, details={"code": code} if code is not None else None)
        self.code = code
        self.data = data


class TransactionNotFound(SafeTxEngineError):
    """A transaction is still unknown to the chain after all lookup attempts."""

    error_code = "TRANSACTION_NOT_FOUND"
    retryable = True

    def __init__(self, tx_hash: str, attempts: int) -> None:
        super().__init__(
            f"Transaction {tx_hash} not found after {attempts} attempts",
            details={"tx_hash": tx_hash, "attempts": attempts},
        )
        self.tx_hash = tx_hash
        self.attempts = attempts


class Reverted(SafeTxEngineError):
    """A mined transaction has a failed receipt status."""

    error_code = "REVERTED"

    def __init__(self, tx_hash: str, block_number: Optional[int] = None) -> None:
        super().__init__(
            f"Transaction {tx_hash} reverted",
            details={"tx_hash": tx_hash, "block_number": block_number},
        )
        self.tx_hash = tx_hash
        self.block_number = block_number


class TransactionReplaced(SafeTxEngineError):
    """The awaited transaction was replaced by another with the same sender nonce."""

    error_code = "TRANSACTION_REPLACED"

    def __init__(
        self,
        tx_hash: str,
        replacement_hash: Optional[str] = None,
        cancelled: bool = False,
    ) -> None:
        super().__init__(
            f"Transaction {tx_hash} was replaced"
            + (f" by {replacement_hash}" if replacement_hash else ""),
            details={"tx_hash": tx_hash, "replacement_hash": replacement_hash},
        )
        self.tx_hash = tx_hash
        self.replacement_hash = replacement_hash
        self.cancelled = cancelled


# =============================================================================
# Reconciliation outcomes
# =============================================================================

class NonceConflict(SafeTxEngineError):
    """Another transaction executed at the nonce of a pending one.

    Reported by reconciliation, never raised to callers.
    """

    error_code = "NONCE_CONFLICT"

    def __init__(self, pending_tx_id: str, executed_tx_id: str, nonce: int) -> None:
        super().__init__(
            f"Nonce {nonce} executed by {executed_tx_id}, discarding pending {pending_tx_id}",
            details={
                "pending_tx_id": pending_tx_id,
                "executed_tx_id": executed_tx_id,
                "nonce": nonce,
            },
        )
        self.pending_tx_id = pending_tx_id
        self.executed_tx_id = executed_tx_id
        self.nonce = nonce
