"""Tests for the pending transaction tracker."""
from __future__ import annotations

import pytest
from conftest import CHAIN_ID, OWNER_A, SAFE_ADDRESS

from safe_tx_engine.models import ExecutionKind, PendingStatus
from safe_tx_engine.pending import get_pending_tracker, reset_pending_tracker


def _start(tracker, tx_id="tx1", nonce=5, kind=ExecutionKind.SINGLE, **kwargs):
    artifact = {"task_id": "task-1"} if kind == ExecutionKind.RELAY else {"tx_hash": "0x" + "a" * 64}
    artifact.update(kwargs)
    return tracker.start(
        tx_id,
        kind,
        chain_id=CHAIN_ID,
        safe_address=SAFE_ADDRESS,
        nonce=nonce,
        **artifact,
    )


class TestStart:
    def test_inserts_executing_record(self, tracker):
        record = _start(tracker, wallet_address=OWNER_A, wallet_nonce=3)

        assert record.status == PendingStatus.EXECUTING
        assert record.started_at is not None
        assert record.completed_at is None
        assert record.artifact == "0x" + "a" * 64
        assert tracker.get("tx1") is record
        assert "tx1" in tracker

    def test_relay_artifact_is_task_id(self, tracker):
        record = _start(tracker, kind=ExecutionKind.RELAY)

        assert record.artifact == "task-1"
        assert record.tx_hash is None

    def test_overwrites_existing_record(self, tracker):
        _start(tracker)
        tracker.mark_error("tx1", "boom")

        record = _start(tracker, kind=ExecutionKind.RELAY)

        assert len(tracker) == 1
        assert tracker.get("tx1") is record
        assert record.status == PendingStatus.EXECUTING
        assert record.error is None

    def test_requires_matching_artifact(self, tracker):
        with pytest.raises(ValueError):
            tracker.start("tx1", ExecutionKind.RELAY, chain_id=CHAIN_ID, safe_address=SAFE_ADDRESS)
        with pytest.raises(ValueError):
            tracker.start("tx1", ExecutionKind.SINGLE, chain_id=CHAIN_ID, safe_address=SAFE_ADDRESS)


class TestTransitions:
    def test_mark_success(self, tracker):
        _start(tracker)

        record = tracker.mark_success("tx1", "0x" + "b" * 64)

        assert record.status == PendingStatus.SUCCESS
        assert record.tx_hash == "0x" + "b" * 64
        assert record.completed_at is not None

    def test_mark_error(self, tracker):
        _start(tracker)

        record = tracker.mark_error("tx1", "reverted")

        assert record.status == PendingStatus.ERROR
        assert record.error == "reverted"

    def test_transitions_on_unknown_id_are_noops(self, tracker):
        assert tracker.mark_success("missing") is None
        assert tracker.mark_error("missing", "boom") is None
        assert len(tracker) == 0

    def test_transitions_only_from_executing(self, tracker):
        _start(tracker)
        tracker.mark_error("tx1", "first")

        assert tracker.mark_success("tx1") is None
        assert tracker.mark_error("tx1", "second") is None
        assert tracker.get("tx1").status == PendingStatus.ERROR
        assert tracker.get("tx1").error == "first"

    def test_clear_is_unconditional(self, tracker):
        _start(tracker, tx_id="tx1")
        _start(tracker, tx_id="tx2", nonce=6)
        tracker.mark_success("tx2")

        assert tracker.clear("tx1") is not None
        assert tracker.clear("tx2") is not None
        assert tracker.clear("tx3") is None
        assert len(tracker) == 0


class TestLookup:
    def test_find_by_nonce_scoped_to_safe(self, tracker):
        _start(tracker, tx_id="tx1", nonce=5)

        assert tracker.find_by_nonce(5).tx_id == "tx1"
        assert tracker.find_by_nonce(5, CHAIN_ID, SAFE_ADDRESS.lower()).tx_id == "tx1"
        assert tracker.find_by_nonce(5, "1", SAFE_ADDRESS) is None
        assert tracker.find_by_nonce(6) is None

    def test_global_tracker_is_shared(self):
        assert get_pending_tracker() is get_pending_tracker()
        first = get_pending_tracker()
        reset_pending_tracker()
        assert get_pending_tracker() is not first
