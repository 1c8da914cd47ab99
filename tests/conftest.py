"""
Pytest configuration for safe-tx-engine tests.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

# Keep audit output in the regular log during tests
os.environ.setdefault("SAFE_TX_ENGINE_AUDIT_LOG_ENABLED", "false")

from safe_tx_engine import logging_utils, pending, rpc_client  # noqa: E402
from safe_tx_engine.config import LoggingConfig, set_config  # noqa: E402
from safe_tx_engine.logging_utils import EngineLogger  # noqa: E402
from safe_tx_engine.pending import PendingTxTracker  # noqa: E402

# Foundry default accounts
OWNER_A = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OWNER_A_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER_B = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
OWNER_C = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
SAFE_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
RECIPIENT = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
CHAIN_ID = "11155111"


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_globals():
    """Fresh configuration, tracker and logger for every test."""
    set_config(None)
    pending.reset_pending_tracker()
    logging_utils._engine_logger = None
    rpc_client._providers.clear()
    yield
    set_config(None)
    pending.reset_pending_tracker()
    logging_utils._engine_logger = None
    rpc_client._providers.clear()


@pytest.fixture
def engine_logger():
    return EngineLogger(config=LoggingConfig(audit_log_enabled=False))


@pytest.fixture
def tracker(engine_logger):
    return PendingTxTracker(engine_logger=engine_logger)


@pytest.fixture
def sample_tx_hash():
    """Valid transaction hash for testing."""
    return "0x" + "a" * 64


def make_signature(byte: str) -> str:
    """A 65-byte signature filled with one repeated hex byte."""
    return "0x" + byte * 65


def make_tx_details(
    tx_id: str = "multisig_0x5FbD_0xabc",
    nonce: int = 5,
    confirmations: Optional[List[Dict[str, Any]]] = None,
    tx_data: Optional[Dict[str, Any]] = None,
    tx_info: Optional[Dict[str, Any]] = None,
    execution_type: str = "MULTISIG",
) -> Dict[str, Any]:
    """Gateway transaction details payload."""
    if confirmations is None:
        confirmations = [
            {"signer": {"value": OWNER_B}, "signature": make_signature("bb"), "submittedAt": 2},
            {"signer": {"value": OWNER_A}, "signature": make_signature("aa"), "submittedAt": 1},
        ]
    if tx_data is None:
        tx_data = {"hexData": "0x", "to": {"value": RECIPIENT}, "value": "1000", "operation": 0}
    execution: Dict[str, Any]
    if execution_type == "MULTISIG":
        execution = {
            "type": "MULTISIG",
            "nonce": nonce,
            "safeTxGas": "0",
            "baseGas": "0",
            "gasPrice": "0",
            "gasToken": "0x0000000000000000000000000000000000000000",
            "refundReceiver": {"value": "0x0000000000000000000000000000000000000000"},
            "safeTxHash": "0x" + "12" * 32,
            "confirmationsRequired": 2,
            "confirmations": confirmations,
            "signers": [{"value": OWNER_A}, {"value": OWNER_B}, {"value": OWNER_C}],
        }
    else:
        execution = {"type": "MODULE", "address": {"value": RECIPIENT}}
    return {
        "txId": tx_id,
        "safeAddress": SAFE_ADDRESS,
        "txStatus": "AWAITING_EXECUTION",
        "txInfo": tx_info or {
            "type": "Transfer",
            "sender": {"value": SAFE_ADDRESS},
            "recipient": {"value": RECIPIENT},
            "direction": "OUTGOING",
            "transferInfo": {"type": "NATIVE_COIN", "value": "1000"},
        },
        "txData": tx_data,
        "detailedExecutionInfo": execution,
        "txHash": None,
    }


def make_history_tx(
    tx_id: str,
    nonce: int,
    tx_hash: str = "0x" + "c" * 64,
    tx_info: Optional[Dict[str, Any]] = None,
    execution_type: str = "MULTISIG",
) -> Dict[str, Any]:
    """Gateway history TRANSACTION item."""
    if execution_type == "MULTISIG":
        execution = {
            "type": "MULTISIG",
            "nonce": nonce,
            "confirmationsRequired": 2,
            "confirmationsSubmitted": 2,
        }
    else:
        execution = {"type": "MODULE", "address": {"value": RECIPIENT}}
    return {
        "type": "TRANSACTION",
        "transaction": {
            "id": tx_id,
            "timestamp": 1700000000000,
            "txStatus": "SUCCESS",
            "txInfo": tx_info or {"type": "Custom", "to": {"value": RECIPIENT}, "methodName": "approve"},
            "executionInfo": execution,
            "txHash": tx_hash,
        },
        "conflictType": "None",
    }
