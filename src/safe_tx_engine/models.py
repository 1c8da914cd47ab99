"""
Canonical Safe transaction data model.

Features:
- Immutable transaction payloads (the inputs of the safeTxHash)
- Signature sets keyed by normalized signer address
- Execution info as a closed MULTISIG / MODULE union
- Gateway transaction details and history list items
- Pending execution records and undeployed account descriptors
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from eth_utils import is_hex_address, to_checksum_address

from .tx_info import TxInfo, parse_tx_info

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(address: str) -> str:
    """Checksum a well-formed hex address; lowercase anything else."""
    if is_hex_address(address):
        return to_checksum_address(address)
    return address.lower()


def normalize_signature(signature: object) -> str:
    """Lowercase ``0x``-prefixed hex; ``''`` for anything that is not hex bytes."""
    if not isinstance(signature, str) or not signature:
        return ""
    body = signature[2:] if signature.startswith("0x") else signature
    try:
        bytes.fromhex(body)
    except ValueError:
        return ""
    return "0x" + body.lower()


def _address_value(raw: Any) -> Optional[str]:
    # The gateway wraps addresses as {"value": "0x..", "name": .., "logoUri": ..}
    if isinstance(raw, dict):
        raw = raw.get("value")
    return raw if isinstance(raw, str) and raw else None


class Operation(IntEnum):
    """Safe call type."""
    CALL = 0
    DELEGATECALL = 1


class ExecutionKind(str, Enum):
    """How a transaction reached the chain."""
    SINGLE = "SINGLE"  # submitted by an owner's own wallet
    RELAY = "RELAY"  # submitted by a sponsoring relayer


class PendingStatus(str, Enum):
    """Local status of a dispatched transaction."""
    EXECUTING = "EXECUTING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class TxStatus(str, Enum):
    """Gateway transaction status."""
    AWAITING_CONFIRMATIONS = "AWAITING_CONFIRMATIONS"
    AWAITING_EXECUTION = "AWAITING_EXECUTION"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    SUCCESS = "SUCCESS"


@dataclass(frozen=True)
class TransactionData:
    """Fields of a Safe transaction.

    Immutable: the safeTxHash is a pure function of these fields plus the
    Safe address, chain id and Safe version.
    """
    to: str
    value: str = "0"  # decimal string, wei
    data: str = "0x"
    operation: Operation = Operation.CALL
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS  # zero address means native currency
    refund_receiver: str = ZERO_ADDRESS
    nonce: int = 0

    @property
    def value_wei(self) -> int:
        return int(self.value)

    @property
    def data_bytes(self) -> bytes:
        data = self.data[2:] if self.data.startswith("0x") else self.data
        return bytes.fromhex(data)

    def to_dict(self) -> Dict[str, Any]:
        """Gateway (camelCase) representation."""
        return {
            "to": self.to,
            "value": self.value,
            "data": self.data,
            "operation": int(self.operation),
            "safeTxGas": str(self.safe_tx_gas),
            "baseGas": str(self.base_gas),
            "gasPrice": str(self.gas_price),
            "gasToken": self.gas_token,
            "refundReceiver": self.refund_receiver,
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class Confirmation:
    """One owner's confirmation of a transaction."""
    signer: Optional[str]
    signature: Optional[str] = None
    submitted_at: Optional[int] = None  # ms since epoch

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Confirmation":
        return cls(
            signer=_address_value(data.get("signer")),
            signature=data.get("signature"),
            submitted_at=data.get("submittedAt"),
        )


class SignatureSet:
    """Signatures keyed by normalized signer address.

    A signer appears at most once; a confirmation without a usable
    signature is stored as ``''``. Signatures are kept as lowercase
    ``0x``-prefixed hex.
    """

    def __init__(self, signatures: Optional[Dict[str, str]] = None):
        self._signatures: Dict[str, str] = {}
        for signer, signature in (signatures or {}).items():
            self.add(signer, signature)

    def add(self, signer: str, signature: Optional[str]) -> None:
        self._signatures[normalize_address(signer)] = normalize_signature(signature)

    def get(self, signer: str) -> Optional[str]:
        return self._signatures.get(normalize_address(signer))

    def items(self) -> List[Tuple[str, str]]:
        return list(self._signatures.items())

    @property
    def signers(self) -> List[str]:
        return list(self._signatures)

    def copy(self) -> "SignatureSet":
        return SignatureSet(dict(self._signatures))

    def __contains__(self, signer: object) -> bool:
        return isinstance(signer, str) and normalize_address(signer) in self._signatures

    def __iter__(self) -> Iterator[str]:
        return iter(self._signatures)

    def __len__(self) -> int:
        return len(self._signatures)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SignatureSet):
            return NotImplemented
        return self._signatures == other._signatures

    def __repr__(self) -> str:
        return f"SignatureSet({self._signatures!r})"


@dataclass
class SafeTransaction:
    """A transaction together with the signatures collected for it."""
    data: TransactionData
    signatures: SignatureSet = field(default_factory=SignatureSet)


# ============ Execution info ============


@dataclass(frozen=True)
class MultisigExecutionInfo:
    """Threshold state of a multisig transaction."""
    nonce: int
    confirmations_required: int
    confirmations_submitted: int = 0
    signers: Tuple[str, ...] = ()
    rejectors: Tuple[str, ...] = ()
    trusted: bool = True

    type = "MULTISIG"


@dataclass(frozen=True)
class ModuleExecutionInfo:
    """Execution through an enabled module, no signatures involved."""
    module_address: str

    type = "MODULE"


ExecutionInfo = Union[MultisigExecutionInfo, ModuleExecutionInfo]


def parse_execution_info(data: Optional[Dict[str, Any]]) -> Optional[ExecutionInfo]:
    """Parse a summary ``executionInfo`` object."""
    if not data:
        return None
    if data.get("type") == "MODULE":
        return ModuleExecutionInfo(module_address=_address_value(data.get("address")) or "")
    return MultisigExecutionInfo(
        nonce=int(data["nonce"]),
        confirmations_required=int(data.get("confirmationsRequired", 0)),
        confirmations_submitted=int(data.get("confirmationsSubmitted", 0)),
        trusted=bool(data.get("trusted", True)),
    )


@dataclass(frozen=True)
class MultisigExecutionDetails:
    """Detailed multisig execution info returned with transaction details."""
    nonce: int
    safe_tx_hash: str
    confirmations_required: int
    confirmations: Tuple[Confirmation, ...] = ()
    signers: Tuple[str, ...] = ()
    rejectors: Tuple[str, ...] = ()
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    executor: Optional[str] = None
    trusted: bool = True

    type = "MULTISIG"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MultisigExecutionDetails":
        return cls(
            nonce=int(data["nonce"]),
            safe_tx_hash=data.get("safeTxHash", ""),
            confirmations_required=int(data.get("confirmationsRequired", 0)),
            confirmations=tuple(
                Confirmation.from_dict(c) for c in data.get("confirmations") or []
            ),
            signers=tuple(
                a for a in (_address_value(s) for s in data.get("signers") or []) if a
            ),
            rejectors=tuple(
                a for a in (_address_value(s) for s in data.get("rejectors") or []) if a
            ),
            safe_tx_gas=int(data.get("safeTxGas") or 0),
            base_gas=int(data.get("baseGas") or 0),
            gas_price=int(data.get("gasPrice") or 0),
            gas_token=data.get("gasToken") or ZERO_ADDRESS,
            refund_receiver=_address_value(data.get("refundReceiver")) or ZERO_ADDRESS,
            executor=_address_value(data.get("executor")),
            trusted=bool(data.get("trusted", True)),
        )

    def to_execution_info(self) -> MultisigExecutionInfo:
        submitted = sum(1 for c in self.confirmations if c.signer)
        return MultisigExecutionInfo(
            nonce=self.nonce,
            confirmations_required=self.confirmations_required,
            confirmations_submitted=submitted,
            signers=self.signers,
            rejectors=self.rejectors,
            trusted=self.trusted,
        )


# ============ Gateway records ============


@dataclass(frozen=True)
class TxData:
    """Decoded call of a transaction as returned by the gateway."""
    to: str
    value: str = "0"
    hex_data: Optional[str] = None
    operation: Operation = Operation.CALL

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TxData":
        return cls(
            to=_address_value(data.get("to")) or ZERO_ADDRESS,
            value=str(data.get("value") or "0"),
            hex_data=data.get("hexData"),
            operation=Operation(int(data.get("operation", 0))),
        )


@dataclass(frozen=True)
class TransactionDetails:
    """Canonical transaction record from the gateway."""
    tx_id: str
    safe_address: str
    tx_status: TxStatus
    tx_info: TxInfo
    tx_data: Optional[TxData] = None
    detailed_execution_info: Optional[Union[MultisigExecutionDetails, ModuleExecutionInfo]] = None
    tx_hash: Optional[str] = None
    executed_at: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionDetails":
        execution = data.get("detailedExecutionInfo")
        details: Optional[Union[MultisigExecutionDetails, ModuleExecutionInfo]] = None
        if execution and execution.get("type") == "MULTISIG":
            details = MultisigExecutionDetails.from_dict(execution)
        elif execution and execution.get("type") == "MODULE":
            details = ModuleExecutionInfo(
                module_address=_address_value(execution.get("address")) or ""
            )

        tx_data = data.get("txData")
        return cls(
            tx_id=data["txId"],
            safe_address=data.get("safeAddress", ""),
            tx_status=TxStatus(data.get("txStatus", TxStatus.AWAITING_CONFIRMATIONS.value)),
            tx_info=parse_tx_info(data.get("txInfo") or {}),
            tx_data=TxData.from_dict(tx_data) if tx_data else None,
            detailed_execution_info=details,
            tx_hash=data.get("txHash"),
            executed_at=data.get("executedAt"),
        )


# ============ History list items ============


@dataclass(frozen=True)
class TransactionSummary:
    """A transaction as listed in the history."""
    id: str
    tx_info: TxInfo
    tx_status: TxStatus
    execution_info: Optional[ExecutionInfo] = None
    tx_hash: Optional[str] = None
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class TransactionItem:
    transaction: TransactionSummary
    conflict_type: str = "None"

    type = "TRANSACTION"


@dataclass(frozen=True)
class DateLabel:
    timestamp: int

    type = "DATE_LABEL"


@dataclass(frozen=True)
class Label:
    label: str

    type = "LABEL"


@dataclass(frozen=True)
class ConflictHeader:
    nonce: int

    type = "CONFLICT_HEADER"


HistoryItem = Union[TransactionItem, DateLabel, Label, ConflictHeader]


def parse_history_item(data: Dict[str, Any]) -> HistoryItem:
    """Parse one entry of a gateway history page."""
    item_type = data.get("type")
    if item_type == "DATE_LABEL":
        return DateLabel(timestamp=int(data.get("timestamp", 0)))
    if item_type == "LABEL":
        return Label(label=data.get("label", ""))
    if item_type == "CONFLICT_HEADER":
        return ConflictHeader(nonce=int(data.get("nonce", 0)))
    if item_type != "TRANSACTION":
        raise ValueError(f"Unknown history item type: {item_type!r}")

    tx = data["transaction"]
    summary = TransactionSummary(
        id=tx["id"],
        tx_info=parse_tx_info(tx.get("txInfo") or {}),
        tx_status=TxStatus(tx.get("txStatus", TxStatus.SUCCESS.value)),
        execution_info=parse_execution_info(tx.get("executionInfo")),
        tx_hash=tx.get("txHash"),
        timestamp=tx.get("timestamp"),
    )
    return TransactionItem(transaction=summary, conflict_type=data.get("conflictType", "None"))


# ============ Local state ============


@dataclass
class PendingExecutionRecord:
    """Local record of a dispatched transaction awaiting the indexer."""
    tx_id: str
    chain_id: str
    safe_address: str
    kind: ExecutionKind
    nonce: Optional[int] = None  # Safe nonce of the executed transaction
    tx_hash: Optional[str] = None
    task_id: Optional[str] = None
    wallet_address: Optional[str] = None
    wallet_nonce: Optional[int] = None
    status: PendingStatus = PendingStatus.EXECUTING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def artifact(self) -> Optional[str]:
        """The tx hash for SINGLE records, the relay task id for RELAY records."""
        if self.kind == ExecutionKind.RELAY:
            return self.task_id
        return self.tx_hash

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "chain_id": self.chain_id,
            "safe_address": self.safe_address,
            "kind": self.kind.value,
            "nonce": self.nonce,
            "tx_hash": self.tx_hash,
            "task_id": self.task_id,
            "wallet_address": self.wallet_address,
            "wallet_nonce": self.wallet_nonce,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class SafeSetupConfig:
    """Arguments of the Safe ``setup`` initializer."""
    owners: Tuple[str, ...]
    threshold: int
    to: str = ZERO_ADDRESS
    data: str = "0x"
    fallback_handler: str = ZERO_ADDRESS
    payment_token: str = ZERO_ADDRESS
    payment: int = 0
    payment_receiver: str = ZERO_ADDRESS


@dataclass(frozen=True)
class PredictedAccountProps:
    """Parameters a fresh Safe will be deployed with."""
    owners: Tuple[str, ...]
    threshold: int
    salt_nonce: str = "0"
    fallback_handler: Optional[str] = None  # None = the version's default handler
    version: Optional[str] = None


@dataclass(frozen=True)
class ReplayedAccountProps:
    """Creation parameters copied from an existing Safe on another chain."""
    factory_address: str
    master_copy_address: str
    salt_nonce: str
    account_config: SafeSetupConfig
    version: Optional[str] = None


@dataclass(frozen=True)
class UndeployedAccountDescriptor:
    """A Safe whose address is known but whose contract is not yet deployed."""
    chain_id: str
    address: str
    deployment_props: Optional[PredictedAccountProps] = None
    replayed_props: Optional[ReplayedAccountProps] = None

    def __post_init__(self):
        if (self.deployment_props is None) == (self.replayed_props is None):
            raise ValueError(
                "Exactly one of deployment_props or replayed_props is required"
            )

    @property
    def version(self) -> Optional[str]:
        props = self.deployment_props or self.replayed_props
        return props.version if props else None
