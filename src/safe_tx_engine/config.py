"""
Configuration management for safe-tx-engine.

Provides centralized configuration for:
- Chain RPC endpoints with fallback support
- Latest known Safe version per chain
- Gateway (transaction service) and relay endpoints
- Relay polling and activation backoff timing
- Logging configuration
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "SAFE_TX_ENGINE_"

DEFAULT_SAFE_VERSION = "1.4.1"


@dataclass
class RPCEndpointConfig:
    """Configuration for a single RPC endpoint."""
    url: str
    priority: int = 0  # Lower is higher priority
    timeout_seconds: float = 30.0


@dataclass
class ChainConfig:
    """Configuration for a chain the engine can execute on."""
    chain_id: int
    name: str
    display_name: str

    # RPC endpoints (primary + fallbacks)
    rpc_endpoints: List[RPCEndpointConfig] = field(default_factory=list)

    block_time_seconds: float = 2.0
    confirmations_required: int = 1

    # Used when a Safe has no stored version (relay payloads, undeployed Safes)
    latest_safe_version: str = DEFAULT_SAFE_VERSION

    is_testnet: bool = False

    def get_primary_rpc_url(self) -> str:
        """Get the highest priority RPC URL."""
        if not self.rpc_endpoints:
            raise ValueError(f"No RPC endpoints configured for {self.name}")
        return sorted(self.rpc_endpoints, key=lambda e: e.priority)[0].url

    def get_all_rpc_urls(self) -> List[str]:
        """Get all RPC URLs sorted by priority."""
        return [e.url for e in sorted(self.rpc_endpoints, key=lambda e: e.priority)]


@dataclass
class GatewayConfig:
    """Configuration for the transaction service gateway (indexer)."""
    url: str = "https://safe-client.safe.global"
    timeout_seconds: float = 30.0
    history_page_size: int = 20


@dataclass
class RelayConfig:
    """Configuration for sponsored relay submission and status polling."""
    url: str = "https://safe-client.safe.global"
    status_url: str = "https://api.gelato.digital"
    timeout_seconds: float = 30.0  # HTTP timeout

    poll_interval_seconds: float = 5.0
    poll_timeout_seconds: float = 120.0


@dataclass
class ActivationConfig:
    """Configuration for counterfactual Safe activation tracking."""
    # Lookup of the deployment transaction: 1s, 2s, 4s ... capped at 32s
    max_attempts: int = 8
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 32.0
    exponential_base: float = 2.0

    confirmations_required: int = 1
    receipt_poll_interval_seconds: float = 2.0
    receipt_timeout_seconds: float = 300.0

    def calculate_delay(self, attempt: int) -> float:
        """Delay after the given (0-based) failed lookup attempt."""
        delay = self.base_delay_seconds * (self.exponential_base ** attempt)
        return min(delay, self.max_delay_seconds)


@dataclass
class ExecutionConfig:
    """Configuration for locally signed executor transactions."""
    gas_limit_buffer_percent: int = 20  # Add 20% to estimated gas
    default_priority_fee_wei: int = 1_000_000_000  # 1 gwei

    # Receipt watching of wallet-submitted executions
    receipt_poll_interval_seconds: float = 3.0
    receipt_timeout_seconds: float = 600.0


@dataclass
class LoggingConfig:
    """Configuration for engine operation logging."""
    # Log levels for different operations
    operation_level: str = "INFO"
    transition_level: str = "INFO"
    poll_level: str = "DEBUG"
    error_level: str = "ERROR"

    # Sensitive data handling
    mask_addresses: bool = False

    # Audit logging
    audit_log_enabled: bool = True
    audit_log_path: Optional[str] = None  # None = use default logger


@dataclass
class EngineConfig:
    """
    Master configuration for safe-tx-engine.

    Supports loading from environment variables with prefix SAFE_TX_ENGINE_.
    Chains are keyed by their decimal chain id string, the form the gateway uses.
    """
    chains: Dict[str, ChainConfig] = field(default_factory=dict)

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    activation: ActivationConfig = field(default_factory=ActivationConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_chain_config(self, chain_id: str) -> ChainConfig:
        """Get configuration for a specific chain."""
        chain_id = str(chain_id)
        if chain_id not in self.chains:
            raise ValueError(f"Unknown chain: {chain_id}")
        return self.chains[chain_id]

    def is_chain_supported(self, chain_id: str) -> bool:
        """Check if a chain is supported."""
        return str(chain_id) in self.chains

    def get_latest_safe_version(self, chain_id: str) -> str:
        """Latest Safe version for a chain, falling back to the global default."""
        chain = self.chains.get(str(chain_id))
        if chain is None:
            return DEFAULT_SAFE_VERSION
        return chain.latest_safe_version


def _get_env(key: str, default: Any = None, prefix: str = ENV_PREFIX) -> Any:
    """Get environment variable with prefix."""
    return os.getenv(f"{prefix}{key}", default)


def _get_env_float(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {ENV_PREFIX}{key}={value!r}")
        return default


def _build_chain_config(
    chain_id: int,
    name: str,
    display_name: str,
    default_rpc: str,
    fallback_rpcs: List[str],
    block_time: float,
    latest_safe_version: str = DEFAULT_SAFE_VERSION,
    is_testnet: bool = False,
) -> ChainConfig:
    """Build a ChainConfig with environment variable overrides."""
    custom_rpc = _get_env(f"{name.upper()}_RPC_URL")
    primary_url = custom_rpc or default_rpc

    endpoints = [RPCEndpointConfig(url=primary_url, priority=0)]
    for i, url in enumerate(fallback_rpcs):
        if url != primary_url:
            endpoints.append(RPCEndpointConfig(url=url, priority=i + 1))

    return ChainConfig(
        chain_id=chain_id,
        name=name,
        display_name=display_name,
        rpc_endpoints=endpoints,
        block_time_seconds=block_time,
        latest_safe_version=_get_env(f"{name.upper()}_SAFE_VERSION", latest_safe_version),
        is_testnet=is_testnet,
    )


def build_default_config() -> EngineConfig:
    """Build default configuration with all supported chains."""
    chains: Dict[str, ChainConfig] = {}

    chains["1"] = _build_chain_config(
        chain_id=1,
        name="ethereum",
        display_name="Ethereum",
        default_rpc="https://eth.llamarpc.com",
        fallback_rpcs=["https://ethereum-rpc.publicnode.com"],
        block_time=12.0,
    )
    chains["10"] = _build_chain_config(
        chain_id=10,
        name="optimism",
        display_name="Optimism",
        default_rpc="https://mainnet.optimism.io",
        fallback_rpcs=["https://optimism-rpc.publicnode.com"],
        block_time=2.0,
    )
    chains["137"] = _build_chain_config(
        chain_id=137,
        name="polygon",
        display_name="Polygon",
        default_rpc="https://polygon-rpc.com",
        fallback_rpcs=["https://polygon-bor-rpc.publicnode.com"],
        block_time=2.0,
    )
    chains["8453"] = _build_chain_config(
        chain_id=8453,
        name="base",
        display_name="Base",
        default_rpc="https://mainnet.base.org",
        fallback_rpcs=["https://base-rpc.publicnode.com"],
        block_time=2.0,
    )
    chains["42161"] = _build_chain_config(
        chain_id=42161,
        name="arbitrum",
        display_name="Arbitrum One",
        default_rpc="https://arb1.arbitrum.io/rpc",
        fallback_rpcs=["https://arbitrum-one-rpc.publicnode.com"],
        block_time=0.25,
    )
    chains["11155111"] = _build_chain_config(
        chain_id=11155111,
        name="sepolia",
        display_name="Sepolia",
        default_rpc="https://rpc.sepolia.org",
        fallback_rpcs=["https://ethereum-sepolia-rpc.publicnode.com"],
        block_time=12.0,
        is_testnet=True,
    )

    relay = RelayConfig(
        url=_get_env("RELAY_URL", RelayConfig.url),
        status_url=_get_env("RELAY_STATUS_URL", RelayConfig.status_url),
        poll_interval_seconds=_get_env_float(
            "RELAY_POLL_INTERVAL_SECONDS", RelayConfig.poll_interval_seconds
        ),
        poll_timeout_seconds=_get_env_float(
            "RELAY_POLL_TIMEOUT_SECONDS", RelayConfig.poll_timeout_seconds
        ),
    )

    logging_config = LoggingConfig(
        mask_addresses=_get_env("LOG_MASK_ADDRESSES", "false").lower() == "true",
        audit_log_enabled=_get_env("AUDIT_LOG_ENABLED", "true").lower() == "true",
        audit_log_path=_get_env("AUDIT_LOG_PATH"),
    )

    return EngineConfig(
        chains=chains,
        gateway=GatewayConfig(url=_get_env("GATEWAY_URL", GatewayConfig.url)),
        relay=relay,
        logging=logging_config,
    )


# Global configuration instance
_global_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = build_default_config()
    return _global_config


def set_config(config: Optional[EngineConfig]) -> None:
    """Set the global configuration instance (``None`` rebuilds defaults lazily)."""
    global _global_config
    _global_config = config


def get_chain_config(chain_id: str) -> ChainConfig:
    """Convenience function to get chain configuration."""
    return get_config().get_chain_config(chain_id)
