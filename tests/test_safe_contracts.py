"""Tests for Safe contract encoding."""
from __future__ import annotations

import pytest
from conftest import OWNER_A, OWNER_B, RECIPIENT, SAFE_ADDRESS
from eth_abi import decode

from safe_tx_engine.models import Operation, SafeSetupConfig, TransactionData
from safe_tx_engine.safe_contracts import (
    SAFE_DEPLOYMENTS,
    compute_safe_tx_hash,
    encode_create_proxy_with_nonce,
    encode_exec_transaction,
    encode_multi_send,
    encode_setup,
    get_safe_deployment,
    parse_version,
)


@pytest.fixture
def tx():
    return TransactionData(to=RECIPIENT, value="1000", data="0x", nonce=5)


class TestSafeTxHash:
    def test_deterministic_hex(self, tx):
        first = compute_safe_tx_hash(SAFE_ADDRESS, 1, "1.3.0", tx)
        second = compute_safe_tx_hash(SAFE_ADDRESS.lower(), 1, "1.3.0", tx)

        assert first == second
        assert first.startswith("0x")
        assert len(first) == 66

    def test_chain_id_in_domain_from_1_3_0(self, tx):
        assert compute_safe_tx_hash(SAFE_ADDRESS, 1, "1.3.0", tx) != compute_safe_tx_hash(
            SAFE_ADDRESS, 10, "1.3.0", tx
        )

    def test_older_versions_ignore_chain_id(self, tx):
        assert compute_safe_tx_hash(SAFE_ADDRESS, 1, "1.1.1", tx) == compute_safe_tx_hash(
            SAFE_ADDRESS, 10, "1.1.1", tx
        )

    def test_pre_1_0_0_uses_data_gas_typehash(self, tx):
        assert compute_safe_tx_hash(SAFE_ADDRESS, 1, "0.1.0", tx) != compute_safe_tx_hash(
            SAFE_ADDRESS, 1, "1.0.0", tx
        )

    def test_nonce_changes_hash(self, tx):
        other = TransactionData(to=RECIPIENT, value="1000", data="0x", nonce=6)

        assert compute_safe_tx_hash(SAFE_ADDRESS, 1, "1.4.1", tx) != compute_safe_tx_hash(
            SAFE_ADDRESS, 1, "1.4.1", other
        )


class TestCalldata:
    def test_exec_transaction(self, tx):
        signatures = bytes.fromhex("aa" * 65)

        calldata = encode_exec_transaction(tx, signatures)

        assert calldata.startswith("0x6a761202")
        decoded = decode(
            ["address", "uint256", "bytes", "uint8", "uint256", "uint256", "uint256", "address", "address", "bytes"],
            bytes.fromhex(calldata[10:]),
        )
        assert decoded[0].lower() == RECIPIENT.lower()
        assert decoded[1] == 1000
        assert decoded[3] == Operation.CALL
        assert decoded[9] == signatures

    def test_setup(self):
        initializer = encode_setup(SafeSetupConfig(owners=(OWNER_A, OWNER_B), threshold=2))

        assert initializer[:4].hex() == "b63e800d"
        owners, threshold = decode(
            ["address[]", "uint256", "address", "bytes", "address", "address", "uint256", "address"],
            initializer[4:],
        )[:2]
        assert [o.lower() for o in owners] == [OWNER_A.lower(), OWNER_B.lower()]
        assert threshold == 2

    def test_create_proxy_with_nonce(self):
        singleton = SAFE_DEPLOYMENTS["1.4.1"]["safe_singleton_l2"]

        calldata = encode_create_proxy_with_nonce(singleton, b"\x01\x02", 7)

        assert calldata.startswith("0x1688f0b9")
        decoded = decode(["address", "bytes", "uint256"], bytes.fromhex(calldata[10:]))
        assert decoded[0].lower() == singleton.lower()
        assert decoded[1:] == (b"\x01\x02", 7)

    def test_multi_send_packing(self):
        calldata = encode_multi_send(
            [
                (Operation.CALL, RECIPIENT, 0, "0x"),
                (Operation.CALL, SAFE_ADDRESS, 1, "0xabcd"),
            ]
        )

        assert calldata.startswith("0x8d80ff0a")
        (packed,) = decode(["bytes"], bytes.fromhex(calldata[10:]))
        # operation + to + value + length + data
        assert len(packed) == (1 + 20 + 32 + 32) * 2 + 2
        assert packed[0] == 0
        assert packed[1:21].hex() == RECIPIENT[2:].lower()
        assert packed[-2:] == bytes.fromhex("abcd")


class TestDeployments:
    def test_parse_version(self):
        assert parse_version("1.3.0") == (1, 3, 0)
        assert parse_version("1.3.0+L2") == (1, 3, 0)

    def test_exact_version(self):
        assert get_safe_deployment("1.4.1") is SAFE_DEPLOYMENTS["1.4.1"]

    def test_falls_back_to_older_deployment(self):
        assert get_safe_deployment("1.4.0") is SAFE_DEPLOYMENTS["1.3.0"]
        assert get_safe_deployment("1.5.0") is SAFE_DEPLOYMENTS["1.4.1"]

    def test_unknown_old_version(self):
        with pytest.raises(ValueError):
            get_safe_deployment("1.1.1")
