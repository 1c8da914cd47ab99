"""Sponsored relay client (submission and task status)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from .config import RelayConfig
from .exceptions import GatewayError

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    """Relay task states."""
    CHECK_PENDING = "CheckPending"
    EXEC_PENDING = "ExecPending"
    WAITING_FOR_CONFIRMATION = "WaitingForConfirmation"
    EXEC_SUCCESS = "ExecSuccess"
    EXEC_REVERTED = "ExecReverted"
    BLACKLISTED = "Blacklisted"
    CANCELLED = "Cancelled"
    NOT_FOUND = "NotFound"


TERMINAL_TASK_STATES = frozenset(
    {
        TaskState.EXEC_SUCCESS,
        TaskState.EXEC_REVERTED,
        TaskState.BLACKLISTED,
        TaskState.CANCELLED,
        TaskState.NOT_FOUND,
    }
)


@dataclass
class RelayTaskStatus:
    task_id: str
    task_state: Optional[str]
    transaction_hash: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.task_state in {s.value for s in TERMINAL_TASK_STATES}

    @property
    def is_success(self) -> bool:
        return self.task_state == TaskState.EXEC_SUCCESS.value


class RelayClient:
    """Client for sponsored transaction relaying."""

    def __init__(self, config: RelayConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

    async def relay_transaction(self, chain_id: str, to: str, data: str, version: str) -> Optional[str]:
        """Submit a relay request; returns the task id, or None if the relay gave none."""
        url = f"{self._config.url.rstrip('/')}/v1/chains/{chain_id}/relay"
        try:
            response = await self._client.post(url, json={"to": to, "data": data, "version": version})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                f"Relay submission failed: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        result: Dict[str, Any] = response.json() or {}
        task_id = result.get("taskId")
        return task_id if isinstance(task_id, str) and task_id else None

    async def get_task_status(self, task_id: str) -> Optional[RelayTaskStatus]:
        """Current status of a relay task; None while the task is not yet known (404)."""
        url = f"{self._config.status_url.rstrip('/')}/tasks/status/{task_id}"
        response = await self._client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        task = (response.json() or {}).get("task")
        if not task:
            return None
        return RelayTaskStatus(
            task_id=task_id,
            task_state=task.get("taskState"),
            transaction_hash=task.get("transactionHash"),
        )

    async def close(self) -> None:
        await self._client.aclose()
