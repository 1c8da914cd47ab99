"""Transaction service gateway client (proposals, details, history)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import GatewayConfig
from .exceptions import GatewayError, SafeTransactionNotFound
from .models import HistoryItem, TransactionData, TransactionDetails, parse_history_item

logger = logging.getLogger(__name__)


@dataclass
class ProposeTransactionRequest:
    tx: TransactionData
    safe_tx_hash: str
    sender: str
    signature: Optional[str] = None
    origin: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.tx.to_dict()
        payload.update(
            {
                "safeTxHash": self.safe_tx_hash,
                "sender": self.sender,
                "signature": self.signature,
                "origin": self.origin,
            }
        )
        return payload


class GatewayClient:
    """Client for the Safe transaction service gateway."""

    def __init__(self, config: GatewayConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.url, timeout=config.timeout_seconds
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                f"Gateway {method} {path} failed: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TransportError as e:
            raise GatewayError(f"Gateway {method} {path} unreachable: {e}") from e
        return response.json()

    async def propose_transaction(
        self,
        chain_id: str,
        safe_address: str,
        request: ProposeTransactionRequest,
    ) -> TransactionDetails:
        data = await self._request(
            "POST",
            f"/v1/chains/{chain_id}/transactions/{safe_address}/propose",
            json=request.to_payload(),
        )
        if not isinstance(data, dict) or "txId" not in data:
            raise GatewayError("Gateway returned invalid proposal payload")
        return TransactionDetails.from_dict(data)

    async def get_transaction_details(self, chain_id: str, tx_id: str) -> TransactionDetails:
        try:
            data = await self._request("GET", f"/v1/chains/{chain_id}/transactions/{tx_id}")
        except GatewayError as e:
            if e.status_code == 404:
                raise SafeTransactionNotFound(tx_id) from e
            raise
        if not isinstance(data, dict) or "txId" not in data:
            raise SafeTransactionNotFound(tx_id, "Gateway returned no transaction details")
        return TransactionDetails.from_dict(data)

    async def get_history(
        self,
        chain_id: str,
        safe_address: str,
        cursor: Optional[str] = None,
    ) -> Tuple[List[HistoryItem], Optional[str]]:
        """One page of executed history and the cursor of the next page."""
        params: Dict[str, Any] = {"limit": self._config.history_page_size}
        if cursor:
            params["cursor"] = cursor
        data = await self._request(
            "GET",
            f"/v1/chains/{chain_id}/safes/{safe_address}/transactions/history",
            params=params,
        )
        items = []
        for raw in data.get("results", []):
            try:
                items.append(parse_history_item(raw))
            except ValueError as e:
                logger.warning(f"Skipping unsupported history item: {e}")
        next_url = data.get("next")
        next_cursor = None
        if next_url:
            next_cursor = httpx.URL(next_url).params.get("cursor")
        return items, next_cursor

    async def close(self) -> None:
        await self._client.aclose()
