"""
Process-wide tracker of dispatched transactions.

Records are keyed by Safe transaction id; at most one per id. All writes go
through start / mark_success / mark_error / clear.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .logging_utils import EngineLogger, get_engine_logger
from .models import ExecutionKind, PendingExecutionRecord, PendingStatus, normalize_address

logger = logging.getLogger(__name__)


class PendingTxTracker:
    """Optimistic local view of transactions that were sent but not yet indexed."""

    def __init__(self, engine_logger: Optional[EngineLogger] = None):
        self._records: Dict[str, PendingExecutionRecord] = {}
        self._engine_logger = engine_logger

    @property
    def _log(self) -> EngineLogger:
        return self._engine_logger if self._engine_logger is not None else get_engine_logger()

    def start(
        self,
        tx_id: str,
        kind: ExecutionKind,
        chain_id: str,
        safe_address: str,
        nonce: Optional[int] = None,
        tx_hash: Optional[str] = None,
        task_id: Optional[str] = None,
        wallet_address: Optional[str] = None,
        wallet_nonce: Optional[int] = None,
    ) -> PendingExecutionRecord:
        """Insert an EXECUTING record, replacing any existing record for ``tx_id``."""
        if kind == ExecutionKind.RELAY and not task_id:
            raise ValueError("Relay records require a task id")
        if kind == ExecutionKind.SINGLE and not tx_hash:
            raise ValueError("Single records require a transaction hash")

        record = PendingExecutionRecord(
            tx_id=tx_id,
            chain_id=str(chain_id),
            safe_address=normalize_address(safe_address),
            kind=kind,
            nonce=nonce,
            tx_hash=tx_hash,
            task_id=task_id,
            wallet_address=wallet_address,
            wallet_nonce=wallet_nonce,
        )
        if tx_id in self._records:
            logger.debug(f"Replacing pending record for {tx_id}")
        self._records[tx_id] = record
        self._log.log_pending_transition(tx_id, record.status.value)
        return record

    def mark_success(self, tx_id: str, tx_hash: Optional[str] = None) -> Optional[PendingExecutionRecord]:
        """EXECUTING -> SUCCESS. No-op unless an EXECUTING record exists."""
        record = self._records.get(tx_id)
        if record is None or record.status != PendingStatus.EXECUTING:
            return None
        record.status = PendingStatus.SUCCESS
        record.completed_at = datetime.now(timezone.utc)
        if tx_hash:
            record.tx_hash = tx_hash
        self._log.log_pending_transition(tx_id, record.status.value)
        return record

    def mark_error(self, tx_id: str, reason: str) -> Optional[PendingExecutionRecord]:
        """EXECUTING -> ERROR. No-op unless an EXECUTING record exists."""
        record = self._records.get(tx_id)
        if record is None or record.status != PendingStatus.EXECUTING:
            return None
        record.status = PendingStatus.ERROR
        record.completed_at = datetime.now(timezone.utc)
        record.error = reason
        self._log.log_pending_transition(tx_id, record.status.value, error=reason)
        return record

    def clear(self, tx_id: str) -> Optional[PendingExecutionRecord]:
        """Remove the record for ``tx_id`` whatever its status."""
        record = self._records.pop(tx_id, None)
        if record is not None:
            self._log.log_pending_transition(tx_id, "CLEARED")
        return record

    def get(self, tx_id: str) -> Optional[PendingExecutionRecord]:
        return self._records.get(tx_id)

    def records(self) -> List[PendingExecutionRecord]:
        return list(self._records.values())

    def find_by_nonce(
        self,
        nonce: int,
        chain_id: Optional[str] = None,
        safe_address: Optional[str] = None,
    ) -> Optional[PendingExecutionRecord]:
        """The record of a Safe transaction with the given nonce, if any."""
        safe = normalize_address(safe_address) if safe_address else None
        for record in self._records.values():
            if record.nonce != nonce:
                continue
            if chain_id is not None and record.chain_id != str(chain_id):
                continue
            if safe is not None and record.safe_address != safe:
                continue
            return record
        return None

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._records

    def __len__(self) -> int:
        return len(self._records)


# Global tracker instance
_pending_tracker: Optional[PendingTxTracker] = None


def get_pending_tracker() -> PendingTxTracker:
    """Get the global pending transaction tracker."""
    global _pending_tracker
    if _pending_tracker is None:
        _pending_tracker = PendingTxTracker()
    return _pending_tracker


def reset_pending_tracker() -> None:
    """Drop the global tracker (tests)."""
    global _pending_tracker
    _pending_tracker = None
