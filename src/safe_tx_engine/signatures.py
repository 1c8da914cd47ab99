"""Signature aggregation and threshold checks for Safe transactions."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from .models import (
    Confirmation,
    ExecutionInfo,
    ModuleExecutionInfo,
    MultisigExecutionInfo,
    SafeTransaction,
    SignatureSet,
    normalize_address,
)

logger = logging.getLogger(__name__)


def aggregate(tx: SafeTransaction, confirmations: Iterable[Confirmation]) -> SignatureSet:
    """Merge confirmations into the transaction's signature set.

    Never raises on malformed confirmations: a missing or non-hex signature
    is recorded as ``''``. Later confirmations from the same signer replace
    earlier ones. The merged set is stored on ``tx`` and returned.
    """
    merged = tx.signatures.copy()
    for confirmation in confirmations:
        if not confirmation.signer:
            logger.warning(f"Skipping confirmation without signer for nonce {tx.data.nonce}")
            continue
        merged.add(confirmation.signer, confirmation.signature)
    tx.signatures = merged
    return merged


def is_threshold_met(execution_info: Optional[ExecutionInfo]) -> bool:
    """Whether a transaction has enough confirmations to execute."""
    if isinstance(execution_info, ModuleExecutionInfo):
        return True
    if isinstance(execution_info, MultisigExecutionInfo):
        return execution_info.confirmations_submitted >= execution_info.confirmations_required
    return False


def encode(signature_set: SignatureSet) -> bytes:
    """Concatenate signatures ordered by signer address, ascending.

    Empty signatures contribute nothing; an empty set encodes to ``b""``.
    """
    ordered = sorted(signature_set.items(), key=lambda item: item[0].lower())
    return b"".join(
        bytes.fromhex(signature[2:]) for _, signature in ordered if signature
    )


def encode_hex(signature_set: SignatureSet) -> str:
    return "0x" + encode(signature_set).hex()


def update_execution_info(
    execution_info: MultisigExecutionInfo,
    signature_set: SignatureSet,
) -> MultisigExecutionInfo:
    """Execution info with ``confirmations_submitted`` recounted from a signature set.

    When the owner list is known, only owners are counted.
    """
    owners = {normalize_address(owner) for owner in execution_info.signers}
    submitted = sum(
        1
        for signer, signature in signature_set.items()
        if signature and (not owners or signer in owners)
    )
    return replace(execution_info, confirmations_submitted=submitted)
