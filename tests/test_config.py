"""Tests for configuration and engine logging."""
from __future__ import annotations

import json
import logging

import pytest

from safe_tx_engine.config import (
    DEFAULT_SAFE_VERSION,
    ActivationConfig,
    LoggingConfig,
    build_default_config,
    get_chain_config,
    get_config,
)
from safe_tx_engine.logging_utils import EngineLogger, OperationType


class TestEngineConfig:
    def test_default_chains(self):
        config = build_default_config()

        assert config.is_chain_supported("1")
        assert config.is_chain_supported(11155111)
        assert not config.is_chain_supported("999")
        assert config.get_chain_config("137").name == "polygon"

    def test_unknown_chain(self):
        with pytest.raises(ValueError):
            get_chain_config("999")

    def test_latest_safe_version_fallback(self):
        assert get_config().get_latest_safe_version("999") == DEFAULT_SAFE_VERSION

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SAFE_TX_ENGINE_SEPOLIA_RPC_URL", "https://sepolia.example")
        monkeypatch.setenv("SAFE_TX_ENGINE_SEPOLIA_SAFE_VERSION", "1.3.0")
        monkeypatch.setenv("SAFE_TX_ENGINE_RELAY_POLL_INTERVAL_SECONDS", "2.5")
        monkeypatch.setenv("SAFE_TX_ENGINE_RELAY_POLL_TIMEOUT_SECONDS", "not-a-number")

        config = build_default_config()

        sepolia = config.get_chain_config("11155111")
        assert sepolia.get_primary_rpc_url() == "https://sepolia.example"
        assert len(sepolia.get_all_rpc_urls()) == 2
        assert config.get_latest_safe_version("11155111") == "1.3.0"
        assert config.relay.poll_interval_seconds == 2.5
        assert config.relay.poll_timeout_seconds == 120.0

    def test_config_is_cached(self):
        assert get_config() is get_config()


class TestActivationBackoff:
    def test_delays_double_up_to_cap(self):
        config = ActivationConfig()

        assert [config.calculate_delay(i) for i in range(8)] == [1, 2, 4, 8, 16, 32, 32, 32]


class TestEngineLogger:
    @pytest.mark.asyncio
    async def test_operation_context_records_failure(self, caplog):
        engine_logger = EngineLogger(config=LoggingConfig(audit_log_enabled=False))

        with caplog.at_level(logging.DEBUG, logger="safe_tx_engine"):
            with pytest.raises(RuntimeError):
                async with engine_logger.operation_context(OperationType.DISPATCH, "1", tx_id="tx-1"):
                    raise RuntimeError("boom")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.operation["success"] is False
        assert record.operation["error"] == "boom"
        assert record.operation["metadata"]["tx_id"] == "tx-1"

    def test_masks_addresses(self, caplog):
        engine_logger = EngineLogger(config=LoggingConfig(mask_addresses=True, audit_log_enabled=False))

        with caplog.at_level(logging.INFO, logger="safe_tx_engine"):
            engine_logger.log_dispatch(
                "WITH_PK", "tx-1", "1", "0x5FbDB2315678afecb367f032d93F642f64180aa3", tx_hash="0xabc"
            )

        assert caplog.records[-1].dispatch["safe_address"] == "0x5FbD...0aa3"

    def test_audit_log_file(self, tmp_path):
        path = tmp_path / "audit.log"
        engine_logger = EngineLogger(config=LoggingConfig(audit_log_path=str(path)))

        engine_logger.log_dispatch("WITH_RELAY", "tx-1", "1", "0xabc", task_id="task-1")

        entry = json.loads(path.read_text().strip())
        assert entry["event_type"] == "transaction_dispatched"
        assert entry["data"]["task_id"] == "task-1"
