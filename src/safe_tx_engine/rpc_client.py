"""
JSON-RPC chain provider.

Features:
- Opaque provider interface used by the executors and activation tracking
- httpx-based JSON-RPC client with endpoint failover on transport errors
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .config import ChainConfig, get_chain_config
from .exceptions import RPCError

logger = logging.getLogger(__name__)


class ChainProvider(Protocol):
    """Chain node operations the engine relies on."""

    async def estimate_gas(self, tx: Dict[str, Any]) -> int: ...

    async def send_raw_transaction(self, signed_tx: str) -> str: ...

    async def get_transaction_count(self, address: str, block: str = "pending") -> int: ...

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]: ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]: ...

    async def get_block_number(self) -> int: ...

    async def get_base_fee(self) -> int: ...

    async def get_max_priority_fee(self) -> int: ...


class ChainRPCClient:
    """JSON-RPC client for a single chain."""

    def __init__(self, rpc_urls: List[str], timeout_seconds: float = 30.0):
        if not rpc_urls:
            raise ValueError("At least one RPC URL is required")
        self._rpc_urls = list(rpc_urls)
        self._timeout = timeout_seconds
        self._http_client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    @classmethod
    def from_chain_config(cls, chain: ChainConfig) -> "ChainRPCClient":
        timeout = chain.rpc_endpoints[0].timeout_seconds if chain.rpc_endpoints else 30.0
        return cls(chain.get_all_rpc_urls(), timeout_seconds=timeout)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Make a JSON-RPC call, failing over to the next endpoint on transport errors."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        client = self._get_client()
        last_error: Optional[Exception] = None
        for url in self._rpc_urls:
            try:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
            except httpx.TransportError as e:
                logger.warning(f"RPC endpoint {url} unreachable for {method}: {e}")
                last_error = e
                continue
            except httpx.HTTPStatusError as e:
                raise RPCError(
                    f"RPC {method} failed with HTTP {e.response.status_code}",
                    code=e.response.status_code,
                ) from e

            result = response.json()
            if result.get("error"):
                error = result["error"]
                raise RPCError(
                    f"RPC error ({method}): {error.get('message', error)}",
                    code=error.get("code"),
                    data=error.get("data"),
                )
            return result.get("result")

        raise RPCError(f"All RPC endpoints failed for {method}: {last_error}")

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        """Estimate gas for a transaction."""
        result = await self._call("eth_estimateGas", [tx])
        return int(result, 16)

    async def send_raw_transaction(self, signed_tx: str) -> str:
        """Broadcast signed transaction."""
        return await self._call("eth_sendRawTransaction", [signed_tx])

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """Get transaction count (nonce) for address."""
        result = await self._call("eth_getTransactionCount", [address, block])
        return int(result, 16)

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get a transaction by hash; None while the node does not know it."""
        return await self._call("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get transaction receipt."""
        return await self._call("eth_getTransactionReceipt", [tx_hash])

    async def get_block_number(self) -> int:
        """Get current block number."""
        result = await self._call("eth_blockNumber")
        return int(result, 16)

    async def get_base_fee(self) -> int:
        """Base fee of the latest block (0 on chains without EIP-1559)."""
        block = await self._call("eth_getBlockByNumber", ["latest", False])
        base_fee = (block or {}).get("baseFeePerGas")
        return int(base_fee, 16) if base_fee else 0

    async def get_max_priority_fee(self) -> int:
        """Get max priority fee for EIP-1559."""
        result = await self._call("eth_maxPriorityFeePerGas")
        return int(result, 16)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# Provider cache, one client per chain
_providers: Dict[str, ChainRPCClient] = {}


def get_chain_provider(chain_id: str) -> ChainRPCClient:
    """Shared RPC client for a configured chain."""
    chain_id = str(chain_id)
    if chain_id not in _providers:
        _providers[chain_id] = ChainRPCClient.from_chain_config(get_chain_config(chain_id))
    return _providers[chain_id]
