"""Polling of relay tasks until they settle.

Each poll runs as an asyncio task paired with a timeout timer. Whichever
finishes first reports the outcome and tears the other one down, so a task
id yields exactly one result.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx

from .config import RelayConfig, get_config
from .exceptions import RelayFailed
from .logging_utils import EngineLogger, get_engine_logger
from .relay_client import RelayClient, RelayTaskStatus

logger = logging.getLogger(__name__)


class RelayPollOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class RelayPollResult:
    task_id: str
    outcome: RelayPollOutcome
    task_state: Optional[str] = None  # None on timeout
    tx_hash: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return self.outcome == RelayPollOutcome.FAILED and self.task_state is None

    def to_error(self) -> Optional[RelayFailed]:
        if self.outcome == RelayPollOutcome.SUCCESS:
            return None
        return RelayFailed(self.task_id, self.task_state)


ResultCallback = Callable[[RelayPollResult], None]


class RelayPollHandle:
    """Owns the poll task and timeout timer of one relay task."""

    def __init__(self, task_id: str, loop: asyncio.AbstractEventLoop):
        self.task_id = task_id
        self._future: asyncio.Future = loop.create_future()
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def result(self) -> Optional[RelayPollResult]:
        if self._future.done() and not self._future.cancelled():
            return self._future.result()
        return None

    def _teardown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    def _settle(self, result: RelayPollResult) -> bool:
        if self._future.done():
            return False
        self._future.set_result(result)
        self._teardown()
        return True

    def cancel(self) -> None:
        """Stop polling without reporting an outcome."""
        if not self._future.done():
            self._future.cancel()
        self._teardown()

    async def wait(self) -> RelayPollResult:
        """Wait for the outcome; raises CancelledError if the handle was cancelled."""
        return await asyncio.shield(self._future)


class RelayStatusPoller:
    """Polls relay task status at a fixed interval until terminal or timeout."""

    def __init__(
        self,
        relay: RelayClient,
        config: Optional[RelayConfig] = None,
        engine_logger: Optional[EngineLogger] = None,
    ):
        self._relay = relay
        self._config = config or get_config().relay
        self._engine_logger = engine_logger

    @property
    def _log(self) -> EngineLogger:
        return self._engine_logger if self._engine_logger is not None else get_engine_logger()

    def start(
        self,
        task_id: str,
        on_result: Optional[ResultCallback] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> RelayPollHandle:
        """Start watching ``task_id``; must be called from a running event loop.

        ``should_continue`` is checked before every poll; returning False
        stops the watch silently.
        """
        loop = asyncio.get_running_loop()
        handle = RelayPollHandle(task_id, loop)
        handle._timer = loop.call_later(
            self._config.poll_timeout_seconds,
            self._on_timeout,
            handle,
            on_result,
        )
        handle._task = loop.create_task(self._poll(handle, on_result, should_continue))
        return handle

    def _report(
        self,
        handle: RelayPollHandle,
        result: RelayPollResult,
        on_result: Optional[ResultCallback],
    ) -> None:
        if not handle._settle(result):
            return
        if result.outcome == RelayPollOutcome.SUCCESS:
            logger.info(f"Relay task {result.task_id} succeeded: {result.tx_hash}")
        else:
            logger.warning(
                f"Relay task {result.task_id} failed: {result.task_state or 'timeout'}"
            )
        if on_result is not None:
            on_result(result)

    def _on_timeout(self, handle: RelayPollHandle, on_result: Optional[ResultCallback]) -> None:
        self._report(
            handle,
            RelayPollResult(task_id=handle.task_id, outcome=RelayPollOutcome.FAILED),
            on_result,
        )

    async def _poll(
        self,
        handle: RelayPollHandle,
        on_result: Optional[ResultCallback],
        should_continue: Optional[Callable[[], bool]],
    ) -> None:
        while not handle.done:
            await asyncio.sleep(self._config.poll_interval_seconds)
            if should_continue is not None and not should_continue():
                logger.debug(f"Stopped watching relay task {handle.task_id}")
                handle.cancel()
                return

            try:
                status: Optional[RelayTaskStatus] = await self._relay.get_task_status(handle.task_id)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Relay status check failed for {handle.task_id}: {e}")
                continue

            self._log.log_relay_poll(handle.task_id, status.task_state if status else None)
            # Unknown tasks (404) keep polling until the timeout
            if status is None or not status.is_terminal:
                continue

            outcome = RelayPollOutcome.SUCCESS if status.is_success else RelayPollOutcome.FAILED
            self._report(
                handle,
                RelayPollResult(
                    task_id=handle.task_id,
                    outcome=outcome,
                    task_state=status.task_state,
                    tx_hash=status.transaction_hash,
                ),
                on_result,
            )
            return
