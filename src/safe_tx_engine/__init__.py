"""Safe transaction authorization, execution and reconciliation exports."""

from .activation import (
    ActivationResult,
    ActivationStatus,
    ActivationSubmission,
    CounterfactualActivator,
)
from .config import EngineConfig, get_config, set_config
from .exceptions import (
    MissingDerivationPath,
    NonceConflict,
    RelayFailed,
    RelayRejected,
    Reverted,
    SafeTransactionNotFound,
    SafeTxEngineError,
    SignerUnavailable,
    TransactionNotFound,
    WrongSignerType,
)
from .executors import (
    ExecutionDispatcher,
    ExecutionMethod,
    ExecutionRequest,
    LedgerExecutor,
    PrivateKeyExecutor,
    RelayExecutor,
)
from .models import (
    Confirmation,
    PendingExecutionRecord,
    SafeTransaction,
    SignatureSet,
    TransactionData,
    UndeployedAccountDescriptor,
)
from .pending import PendingTxTracker, get_pending_tracker
from .reconciler import HistoryReconciler, ReconciliationReport
from .relay_poller import RelayPollHandle, RelayPollOutcome, RelayStatusPoller
from .watchers import PendingTxWatcher

__all__ = [
    "ActivationResult",
    "ActivationStatus",
    "ActivationSubmission",
    "CounterfactualActivator",
    "EngineConfig",
    "get_config",
    "set_config",
    "MissingDerivationPath",
    "NonceConflict",
    "RelayFailed",
    "RelayRejected",
    "Reverted",
    "SafeTransactionNotFound",
    "SafeTxEngineError",
    "SignerUnavailable",
    "TransactionNotFound",
    "WrongSignerType",
    "ExecutionDispatcher",
    "ExecutionMethod",
    "ExecutionRequest",
    "LedgerExecutor",
    "PrivateKeyExecutor",
    "RelayExecutor",
    "Confirmation",
    "PendingExecutionRecord",
    "SafeTransaction",
    "SignatureSet",
    "TransactionData",
    "UndeployedAccountDescriptor",
    "PendingTxTracker",
    "get_pending_tracker",
    "HistoryReconciler",
    "ReconciliationReport",
    "RelayPollHandle",
    "RelayPollOutcome",
    "RelayStatusPoller",
    "PendingTxWatcher",
]
