"""Transaction info variants shown for each Safe transaction.

The gateway tags every transaction with a ``txInfo.type``. Each type maps
to one dataclass here; consumers branch on the class, and every branching
helper ends in a ``TypeError`` so a new variant cannot slip through.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

NESTED_SAFE_CREATION_METHODS = frozenset({"createProxyWithNonce", "multiSend"})


def _value(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        raw = raw.get("value")
    return raw if isinstance(raw, str) and raw else None


class TransferDirection(str, Enum):
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"
    UNKNOWN = "UNKNOWN"


class TransferType(str, Enum):
    NATIVE_COIN = "NATIVE_COIN"
    ERC20 = "ERC20"
    ERC721 = "ERC721"


@dataclass(frozen=True)
class Transfer:
    sender: Optional[str]
    recipient: Optional[str]
    direction: TransferDirection
    transfer_type: TransferType
    value: Optional[str] = None
    token_address: Optional[str] = None
    token_symbol: Optional[str] = None
    token_id: Optional[str] = None


@dataclass(frozen=True)
class Custom:
    to: Optional[str]
    value: str = "0"
    data_size: int = 0
    method_name: Optional[str] = None
    action_count: Optional[int] = None
    is_cancellation: bool = False


@dataclass(frozen=True)
class SettingsChange:
    method: Optional[str] = None
    settings_type: Optional[str] = None


@dataclass(frozen=True)
class SwapOrder:
    uid: str
    status: str
    kind: str
    sell_token: Optional[str] = None
    buy_token: Optional[str] = None
    sell_amount: Optional[str] = None
    buy_amount: Optional[str] = None
    executed_fee: Optional[str] = None
    executed_fee_token: Optional[str] = None


@dataclass(frozen=True)
class Creation:
    creator: Optional[str]
    transaction_hash: Optional[str] = None
    implementation: Optional[str] = None
    factory: Optional[str] = None


TxInfo = Union[Transfer, Custom, SettingsChange, SwapOrder, Creation]


@dataclass(frozen=True)
class SwapFee:
    amount: str
    token: Optional[str]


def parse_tx_info(data: Dict[str, Any]) -> TxInfo:
    """Build the variant for a gateway ``txInfo`` object.

    Types this engine does not model are read as generic contract
    interactions.
    """
    tx_type = data.get("type")

    if tx_type == "Transfer":
        info = data.get("transferInfo") or {}
        return Transfer(
            sender=_value(data.get("sender")),
            recipient=_value(data.get("recipient")),
            direction=TransferDirection(data.get("direction", "UNKNOWN")),
            transfer_type=TransferType(info.get("type", TransferType.NATIVE_COIN.value)),
            value=info.get("value"),
            token_address=info.get("tokenAddress"),
            token_symbol=info.get("tokenSymbol"),
            token_id=info.get("tokenId"),
        )

    if tx_type == "SettingsChange":
        decoded = data.get("dataDecoded") or {}
        settings = data.get("settingsInfo") or {}
        return SettingsChange(method=decoded.get("method"), settings_type=settings.get("type"))

    if tx_type == "SwapOrder":
        return SwapOrder(
            uid=data.get("uid", ""),
            status=data.get("status", ""),
            kind=data.get("kind", ""),
            sell_token=(data.get("sellToken") or {}).get("symbol"),
            buy_token=(data.get("buyToken") or {}).get("symbol"),
            sell_amount=data.get("sellAmount"),
            buy_amount=data.get("buyAmount"),
            executed_fee=data.get("executedFee") or data.get("executedSurplusFee"),
            executed_fee_token=(data.get("executedFeeToken") or {}).get("symbol")
            or (data.get("sellToken") or {}).get("symbol"),
        )

    if tx_type == "Creation":
        return Creation(
            creator=_value(data.get("creator")),
            transaction_hash=data.get("transactionHash"),
            implementation=_value(data.get("implementation")),
            factory=_value(data.get("factory")),
        )

    return Custom(
        to=_value(data.get("to")),
        value=str(data.get("value") or "0"),
        data_size=int(data.get("dataSize") or 0),
        method_name=data.get("methodName"),
        action_count=data.get("actionCount"),
        is_cancellation=bool(data.get("isCancellation", False)),
    )


def get_tx_title(tx_info: TxInfo) -> str:
    """Header title for a transaction."""
    if isinstance(tx_info, Transfer):
        return "Received" if tx_info.direction == TransferDirection.INCOMING else "Sent"
    if isinstance(tx_info, Custom):
        if tx_info.is_cancellation:
            return "On-chain rejection"
        if tx_info.method_name == "multiSend":
            return "Batch"
        return tx_info.method_name or "Contract interaction"
    if isinstance(tx_info, SettingsChange):
        return tx_info.method or "Settings change"
    if isinstance(tx_info, SwapOrder):
        return "Swap order"
    if isinstance(tx_info, Creation):
        return "Safe Account created"
    raise TypeError(f"Unhandled tx info: {type(tx_info).__name__}")


def extract_fee(tx_info: TxInfo) -> Optional[SwapFee]:
    """Explicit fee carried by the transaction, if any."""
    if isinstance(tx_info, SwapOrder):
        if tx_info.executed_fee is None:
            return None
        return SwapFee(amount=tx_info.executed_fee, token=tx_info.executed_fee_token)
    if isinstance(tx_info, (Transfer, Custom, SettingsChange, Creation)):
        return None
    raise TypeError(f"Unhandled tx info: {type(tx_info).__name__}")


def is_nested_safe_creation(tx_info: TxInfo) -> bool:
    """Whether executing this transaction may have created a Safe owned by the Safe."""
    return isinstance(tx_info, Custom) and tx_info.method_name in NESTED_SAFE_CREATION_METHODS
