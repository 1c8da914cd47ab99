"""Watching of dispatched transactions until the chain or relay settles them.

Relay records are followed through the relay poller, wallet records through
their receipt. Only failures are written to the tracker; success is left to
history reconciliation, which is authoritative.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Union

from .config import ExecutionConfig, get_config
from .exceptions import Reverted
from .executors import ProviderFactory
from .models import ExecutionKind, PendingExecutionRecord, PendingStatus
from .pending import PendingTxTracker, get_pending_tracker
from .relay_poller import RelayPollHandle, RelayPollOutcome, RelayPollResult, RelayStatusPoller
from .rpc_client import get_chain_provider

logger = logging.getLogger(__name__)


class PendingTxWatcher:
    """Starts one watch per pending record and tears it down on demand."""

    def __init__(
        self,
        relay_poller: Optional[RelayStatusPoller] = None,
        tracker: Optional[PendingTxTracker] = None,
        provider_factory: ProviderFactory = get_chain_provider,
        config: Optional[ExecutionConfig] = None,
    ):
        self._relay_poller = relay_poller
        self._tracker = tracker
        self._provider_factory = provider_factory
        self._config = config or get_config().execution
        self._watches: Dict[str, Union[RelayPollHandle, asyncio.Task]] = {}

    @property
    def tracker(self) -> PendingTxTracker:
        return self._tracker if self._tracker is not None else get_pending_tracker()

    def _is_executing(self, tx_id: str) -> bool:
        record = self.tracker.get(tx_id)
        return record is not None and record.status == PendingStatus.EXECUTING

    def watch(self, record: PendingExecutionRecord) -> Union[RelayPollHandle, asyncio.Task]:
        """Start watching a record; replaces an existing watch for the same tx id."""
        self.stop(record.tx_id)
        tx_id = record.tx_id

        if record.kind == ExecutionKind.RELAY:
            if self._relay_poller is None:
                raise ValueError("Watching relayed transactions requires a relay poller")
            watch = self._relay_poller.start(
                record.task_id,
                on_result=lambda result: self._on_relay_result(tx_id, result),
                should_continue=lambda: self._is_executing(tx_id),
            )
        else:
            watch = asyncio.get_running_loop().create_task(self._watch_receipt(record))

        self._watches[tx_id] = watch
        return watch

    def _on_relay_result(self, tx_id: str, result: RelayPollResult) -> None:
        self._watches.pop(tx_id, None)
        if result.outcome == RelayPollOutcome.FAILED:
            self.tracker.mark_error(tx_id, result.to_error().message)
        else:
            logger.info(f"Relayed {tx_id} mined in {result.tx_hash}, awaiting indexer")

    async def _watch_receipt(self, record: PendingExecutionRecord) -> None:
        provider = self._provider_factory(record.chain_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.receipt_timeout_seconds

        try:
            while self._is_executing(record.tx_id) and loop.time() < deadline:
                receipt = await provider.get_transaction_receipt(record.tx_hash)
                if receipt is not None:
                    if int(receipt.get("status", "0x1"), 16) == 0:
                        error = Reverted(record.tx_hash, int(receipt["blockNumber"], 16))
                        self.tracker.mark_error(record.tx_id, error.message)
                    else:
                        logger.info(f"{record.tx_id} mined in {record.tx_hash}, awaiting indexer")
                    return
                await asyncio.sleep(self._config.receipt_poll_interval_seconds)
        finally:
            if self._watches.get(record.tx_id) is asyncio.current_task():
                del self._watches[record.tx_id]

    def stop(self, tx_id: str) -> None:
        watch = self._watches.pop(tx_id, None)
        if watch is not None:
            watch.cancel()

    def stop_all(self) -> None:
        for tx_id in list(self._watches):
            self.stop(tx_id)

    def __len__(self) -> int:
        return len(self._watches)
