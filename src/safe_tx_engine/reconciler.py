"""
Reconciliation of pending records against indexed transaction history.

The indexer is authoritative. For every executed multisig entry the
pending record with the same Safe nonce is removed from the tracker, as
confirmed (same transaction) or discarded (another transaction took the
nonce).
Re-processing the same history is a no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Set

from .exceptions import NonceConflict
from .gateway_client import GatewayClient
from .logging_utils import EngineLogger, OperationType, get_engine_logger
from .models import HistoryItem, MultisigExecutionInfo, PendingStatus, TransactionItem
from .pending import PendingTxTracker, get_pending_tracker
from .tx_info import is_nested_safe_creation

logger = logging.getLogger(__name__)


class OwnedSafesCache(Protocol):
    """Cache of the Safes owned by the current user."""

    def invalidate(self) -> None: ...


@dataclass
class ReconciliationReport:
    confirmed: List[str] = field(default_factory=list)
    cleared: List[str] = field(default_factory=list)
    conflicts: List[NonceConflict] = field(default_factory=list)
    invalidated_for: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.confirmed or self.cleared or self.invalidated_for)


class HistoryReconciler:
    """Applies executed history to the pending tracker."""

    def __init__(
        self,
        owned_safes_cache: Optional[OwnedSafesCache] = None,
        tracker: Optional[PendingTxTracker] = None,
        engine_logger: Optional[EngineLogger] = None,
    ):
        self._cache = owned_safes_cache
        self._tracker = tracker
        self._engine_logger = engine_logger

    @property
    def tracker(self) -> PendingTxTracker:
        return self._tracker if self._tracker is not None else get_pending_tracker()

    @property
    def _log(self) -> EngineLogger:
        return self._engine_logger if self._engine_logger is not None else get_engine_logger()

    def reconcile(
        self,
        items: Iterable[HistoryItem],
        chain_id: Optional[str] = None,
        safe_address: Optional[str] = None,
    ) -> ReconciliationReport:
        """Reconcile one batch of history entries.

        ``chain_id`` and ``safe_address`` scope the nonce lookup to the Safe
        the history belongs to.
        """
        report = ReconciliationReport()
        # Entries the owned-Safes cache was already invalidated for
        invalidated: Set[str] = set()

        for item in items:
            if not isinstance(item, TransactionItem):
                continue
            summary = item.transaction
            execution = summary.execution_info
            if not isinstance(execution, MultisigExecutionInfo):
                continue

            record = self.tracker.find_by_nonce(execution.nonce, chain_id, safe_address)
            if record is None:
                continue

            if (
                self._cache is not None
                and is_nested_safe_creation(summary.tx_info)
                and summary.id not in invalidated
            ):
                self._cache.invalidate()
                invalidated.add(summary.id)
                report.invalidated_for.append(summary.id)

            if record.tx_id == summary.id:
                if record.status == PendingStatus.EXECUTING:
                    self.tracker.mark_success(record.tx_id, summary.tx_hash)
                    report.confirmed.append(record.tx_id)
                else:
                    # Already settled locally, e.g. a relay timeout
                    report.cleared.append(record.tx_id)
                self.tracker.clear(record.tx_id)
            else:
                conflict = NonceConflict(record.tx_id, summary.id, execution.nonce)
                logger.info(conflict.message)
                self.tracker.clear(record.tx_id)
                report.cleared.append(record.tx_id)
                report.conflicts.append(conflict)

        if report.changed:
            self._log.log_reconciliation(
                safe_address,
                confirmed=len(report.confirmed),
                cleared=len(report.cleared),
                invalidated=len(report.invalidated_for),
            )
        return report

    async def reconcile_from_gateway(
        self,
        gateway: GatewayClient,
        chain_id: str,
        safe_address: str,
    ) -> ReconciliationReport:
        """Fetch the latest history page and reconcile it."""
        async with self._log.operation_context(
            OperationType.RECONCILIATION, chain_id, safe_address=safe_address
        ) as ctx:
            items, _ = await gateway.get_history(chain_id, safe_address)
            report = self.reconcile(items, chain_id=chain_id, safe_address=safe_address)
            ctx.metadata["confirmed"] = len(report.confirmed)
            ctx.metadata["cleared"] = len(report.cleared)
            return report
