"""Tests for transaction info variants."""
from __future__ import annotations

import pytest
from conftest import RECIPIENT, SAFE_ADDRESS

from safe_tx_engine.tx_info import (
    Creation,
    Custom,
    SettingsChange,
    SwapFee,
    SwapOrder,
    Transfer,
    TransferDirection,
    TransferType,
    extract_fee,
    get_tx_title,
    is_nested_safe_creation,
    parse_tx_info,
)


class TestParse:
    def test_transfer(self):
        info = parse_tx_info(
            {
                "type": "Transfer",
                "sender": {"value": SAFE_ADDRESS},
                "recipient": {"value": RECIPIENT},
                "direction": "OUTGOING",
                "transferInfo": {"type": "ERC20", "value": "5", "tokenAddress": RECIPIENT, "tokenSymbol": "USDC"},
            }
        )

        assert isinstance(info, Transfer)
        assert info.transfer_type == TransferType.ERC20
        assert info.direction == TransferDirection.OUTGOING
        assert info.token_symbol == "USDC"

    def test_swap_order(self):
        info = parse_tx_info(
            {
                "type": "SwapOrder",
                "uid": "0x01",
                "status": "fulfilled",
                "kind": "sell",
                "sellToken": {"symbol": "WETH"},
                "buyToken": {"symbol": "USDC"},
                "executedFee": "123",
            }
        )

        assert isinstance(info, SwapOrder)
        assert info.executed_fee_token == "WETH"

    def test_unknown_type_is_contract_interaction(self):
        info = parse_tx_info({"type": "SomethingNew", "to": {"value": RECIPIENT}})

        assert isinstance(info, Custom)
        assert get_tx_title(info) == "Contract interaction"


class TestTitle:
    @pytest.mark.parametrize(
        "info,title",
        [
            (Transfer(None, None, TransferDirection.INCOMING, TransferType.NATIVE_COIN), "Received"),
            (Transfer(None, None, TransferDirection.OUTGOING, TransferType.NATIVE_COIN), "Sent"),
            (Custom(to=RECIPIENT, is_cancellation=True), "On-chain rejection"),
            (Custom(to=RECIPIENT, method_name="multiSend"), "Batch"),
            (Custom(to=RECIPIENT, method_name="approve"), "approve"),
            (SettingsChange(method="addOwnerWithThreshold"), "addOwnerWithThreshold"),
            (SettingsChange(), "Settings change"),
            (SwapOrder(uid="0x01", status="open", kind="sell"), "Swap order"),
            (Creation(creator=RECIPIENT), "Safe Account created"),
        ],
    )
    def test_titles(self, info, title):
        assert get_tx_title(info) == title

    def test_unhandled_variant(self):
        with pytest.raises(TypeError):
            get_tx_title(object())


class TestFee:
    def test_swap_fee(self):
        info = SwapOrder(uid="0x01", status="fulfilled", kind="sell", executed_fee="10", executed_fee_token="WETH")

        assert extract_fee(info) == SwapFee(amount="10", token="WETH")

    def test_no_fee_for_other_variants(self):
        assert extract_fee(Custom(to=RECIPIENT)) is None
        assert extract_fee(SwapOrder(uid="0x01", status="open", kind="sell")) is None

    def test_unhandled_variant(self):
        with pytest.raises(TypeError):
            extract_fee("Transfer")


def test_nested_safe_creation():
    assert is_nested_safe_creation(Custom(to=RECIPIENT, method_name="createProxyWithNonce"))
    assert is_nested_safe_creation(Custom(to=RECIPIENT, method_name="multiSend"))
    assert not is_nested_safe_creation(Custom(to=RECIPIENT, method_name="approve"))
    assert not is_nested_safe_creation(SettingsChange(method="createProxyWithNonce"))
