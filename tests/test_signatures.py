"""Tests for signature aggregation and threshold checks."""
from __future__ import annotations

from conftest import OWNER_A, OWNER_B, OWNER_C, RECIPIENT, make_signature

from safe_tx_engine.models import (
    Confirmation,
    ModuleExecutionInfo,
    MultisigExecutionInfo,
    SafeTransaction,
    SignatureSet,
    TransactionData,
    normalize_address,
)
from safe_tx_engine.signatures import (
    aggregate,
    encode,
    encode_hex,
    is_threshold_met,
    update_execution_info,
)


def _safe_tx(nonce: int = 5) -> SafeTransaction:
    return SafeTransaction(data=TransactionData(to=RECIPIENT, value="1", nonce=nonce))


class TestAggregate:
    def test_merges_confirmations_keyed_by_signer(self):
        tx = _safe_tx()
        result = aggregate(
            tx,
            [
                Confirmation(signer=OWNER_A, signature=make_signature("aa")),
                Confirmation(signer=OWNER_B, signature=make_signature("bb")),
            ],
        )

        assert len(result) == 2
        assert result.get(OWNER_A) == make_signature("aa")
        assert tx.signatures is result

    def test_signer_keys_are_case_normalized(self):
        tx = _safe_tx()
        aggregate(tx, [Confirmation(signer=OWNER_A.lower(), signature=make_signature("aa"))])
        aggregate(tx, [Confirmation(signer=OWNER_A.upper().replace("0X", "0x"), signature=make_signature("ab"))])

        assert len(tx.signatures) == 1
        assert tx.signatures.signers == [normalize_address(OWNER_A)]
        assert tx.signatures.get(OWNER_A) == make_signature("ab")

    def test_null_signature_becomes_empty_string(self):
        result = aggregate(_safe_tx(), [Confirmation(signer=OWNER_A, signature=None)])

        assert result.get(OWNER_A) == ""

    def test_malformed_signature_does_not_raise(self):
        result = aggregate(
            _safe_tx(),
            [
                Confirmation(signer=OWNER_A, signature="0xnothex"),
                Confirmation(signer=None, signature=make_signature("bb")),
            ],
        )

        assert result.get(OWNER_A) == ""
        assert len(result) == 1

    def test_keeps_existing_signatures(self):
        tx = _safe_tx()
        tx.signatures = SignatureSet({OWNER_C: make_signature("cc")})

        result = aggregate(tx, [Confirmation(signer=OWNER_A, signature=make_signature("aa"))])

        assert OWNER_C in result
        assert OWNER_A in result


class TestEncode:
    def test_sorted_ascending_by_signer_address(self):
        signatures = SignatureSet(
            {
                OWNER_A: make_signature("aa"),  # 0xf39F...
                OWNER_C: make_signature("cc"),  # 0x3C44...
                OWNER_B: make_signature("bb"),  # 0x7099...
            }
        )

        encoded = encode(signatures)

        assert encoded == bytes.fromhex("cc" * 65 + "bb" * 65 + "aa" * 65)

    def test_empty_set_encodes_to_empty_bytes(self):
        assert encode(SignatureSet()) == b""
        assert encode_hex(SignatureSet()) == "0x"

    def test_empty_signature_contributes_nothing(self):
        signatures = SignatureSet({OWNER_A: make_signature("aa"), OWNER_B: ""})

        assert encode(signatures) == bytes.fromhex("aa" * 65)

    def test_insertion_order_does_not_matter(self):
        first = SignatureSet({OWNER_A: make_signature("aa"), OWNER_B: make_signature("bb")})
        second = SignatureSet({OWNER_B: make_signature("bb"), OWNER_A: make_signature("aa")})

        assert encode(first) == encode(second)

    def test_signature_without_prefix_keeps_every_byte(self):
        signatures = SignatureSet({OWNER_A: "11" * 65})
        signatures.add(OWNER_B, "0x" + "BB" * 65)

        encoded = encode(signatures)

        assert len(encoded) == 130
        assert encoded == bytes.fromhex("bb" * 65 + "11" * 65)
        assert signatures.get(OWNER_A) == "0x" + "11" * 65

    def test_non_hex_signature_is_stored_empty(self):
        signatures = SignatureSet({OWNER_A: "not-a-signature"})
        signatures.add(OWNER_B, "0xabc")

        assert signatures.get(OWNER_A) == ""
        assert signatures.get(OWNER_B) == ""
        assert encode(signatures) == b""


class TestThreshold:
    def test_multisig_threshold(self):
        info = MultisigExecutionInfo(nonce=5, confirmations_required=2, confirmations_submitted=1)
        assert is_threshold_met(info) is False

        info = MultisigExecutionInfo(nonce=5, confirmations_required=2, confirmations_submitted=2)
        assert is_threshold_met(info) is True

    def test_over_threshold(self):
        info = MultisigExecutionInfo(nonce=5, confirmations_required=2, confirmations_submitted=3)
        assert is_threshold_met(info) is True

    def test_module_always_met(self):
        assert is_threshold_met(ModuleExecutionInfo(module_address=RECIPIENT)) is True

    def test_missing_info_not_met(self):
        assert is_threshold_met(None) is False

    def test_update_execution_info_counts_owner_signatures(self):
        info = MultisigExecutionInfo(
            nonce=5,
            confirmations_required=2,
            signers=(OWNER_A, OWNER_B, OWNER_C),
        )
        outsider = "0x1234567890123456789012345678901234567890"
        signatures = SignatureSet(
            {OWNER_A: make_signature("aa"), OWNER_B: "", outsider: make_signature("dd")}
        )

        updated = update_execution_info(info, signatures)

        assert updated.confirmations_submitted == 1
        assert is_threshold_met(updated) is False
        assert info.confirmations_submitted == 0
