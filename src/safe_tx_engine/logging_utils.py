"""
Structured logging for Safe transaction execution.

Features:
- Operation context tracking with timing
- Dispatch and pending-record lifecycle logging
- Relay poll and reconciliation logging
- Audit trail support
- Address masking
"""
from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import LoggingConfig, get_config

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Types of engine operations."""
    PROPOSAL = "proposal"
    DISPATCH = "dispatch"
    RELAY_SUBMIT = "relay_submit"
    RELAY_POLL = "relay_poll"
    ACTIVATION = "activation"
    RECEIPT_WAIT = "receipt_wait"
    RECONCILIATION = "reconciliation"


@dataclass
class OperationContext:
    """Context for an engine operation."""
    operation_id: str
    operation_type: OperationType
    chain_id: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        """Mark operation as complete."""
        self.completed_at = datetime.now(timezone.utc)
        self.duration_ms = (
            (self.completed_at - self.started_at).total_seconds() * 1000
        )
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "chain_id": self.chain_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "metadata": self.metadata,
        }


class EngineLogger:
    """
    Structured logger for engine operations.

    Wraps a stdlib logger; records go out with an ``extra`` payload so
    JSON formatters can pick the structured fields up.
    """

    def __init__(
        self,
        name: str = "safe_tx_engine",
        config: Optional[LoggingConfig] = None,
    ):
        self._logger = logging.getLogger(name)
        self._config = config or get_config().logging
        self._operation_counter = 0

    def _generate_operation_id(self) -> str:
        """Generate a unique operation ID."""
        self._operation_counter += 1
        timestamp = int(time.time() * 1000)
        return f"op_{timestamp}_{self._operation_counter}"

    def _get_level(self, level_str: str) -> int:
        """Convert level string to logging level."""
        return getattr(logging, level_str.upper(), logging.INFO)

    def _addr(self, address: Optional[str]) -> Optional[str]:
        if address and self._config.mask_addresses:
            return self._mask_address(address)
        return address

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        chain_id: str,
        **metadata,
    ):
        """
        Context manager for tracking an operation.

        Usage:
            async with engine_logger.operation_context(OperationType.DISPATCH, "1") as ctx:
                ctx.metadata["tx_hash"] = tx_hash
        """
        ctx = OperationContext(
            operation_id=self._generate_operation_id(),
            operation_type=operation_type,
            chain_id=str(chain_id),
            metadata=metadata,
        )

        self._logger.debug(
            f"Starting {operation_type.value} on chain {chain_id}",
            extra={"operation": ctx.to_dict()},
        )

        try:
            yield ctx
            ctx.complete(success=True)

        except Exception as e:
            ctx.complete(success=False, error=str(e))
            raise

        finally:
            level = (
                self._get_level(self._config.error_level)
                if not ctx.success
                else self._get_level(self._config.operation_level)
            )
            self._logger.log(
                level,
                f"Completed {operation_type.value} on chain {chain_id} in {ctx.duration_ms:.0f}ms "
                f"(success={ctx.success})",
                extra={"operation": ctx.to_dict()},
            )

    def log_dispatch(
        self,
        method: str,
        tx_id: str,
        chain_id: str,
        safe_address: str,
        tx_hash: Optional[str] = None,
        task_id: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> None:
        """Log a successful dispatch."""
        entry = {
            "method": method,
            "tx_id": tx_id,
            "chain_id": str(chain_id),
            "safe_address": self._addr(safe_address),
            "tx_hash": tx_hash,
            "task_id": task_id,
            "wallet_address": self._addr(wallet_address),
        }
        self._logger.log(
            self._get_level(self._config.operation_level),
            f"Dispatched {tx_id} via {method}: {tx_hash or task_id}",
            extra={"dispatch": entry},
        )

        if self._config.audit_log_enabled:
            self._write_audit_log("transaction_dispatched", entry)

    def log_pending_transition(
        self,
        tx_id: str,
        status: str,
        error: Optional[str] = None,
    ) -> None:
        """Log a pending record status change."""
        level = (
            self._get_level(self._config.error_level)
            if error
            else self._get_level(self._config.transition_level)
        )
        self._logger.log(
            level,
            f"Pending {tx_id} -> {status}" + (f" ({error})" if error else ""),
            extra={"pending": {"tx_id": tx_id, "status": status, "error": error}},
        )

    def log_relay_poll(self, task_id: str, task_state: Optional[str]) -> None:
        """Log one relay status poll."""
        self._logger.log(
            self._get_level(self._config.poll_level),
            f"Relay task {task_id}: {task_state or 'unknown'}",
            extra={"relay_poll": {"task_id": task_id, "task_state": task_state}},
        )

    def log_reconciliation(
        self,
        safe_address: Optional[str],
        confirmed: int,
        cleared: int,
        invalidated: int,
    ) -> None:
        """Log a reconciliation pass summary."""
        self._logger.log(
            self._get_level(self._config.transition_level),
            f"Reconciled history for {self._addr(safe_address) or 'all safes'}: "
            f"confirmed={confirmed}, cleared={cleared}, invalidated={invalidated}",
            extra={
                "reconciliation": {
                    "safe_address": self._addr(safe_address),
                    "confirmed": confirmed,
                    "cleared": cleared,
                    "invalidated": invalidated,
                }
            },
        )

        if self._config.audit_log_enabled and (confirmed or cleared):
            self._write_audit_log("history_reconciled", {
                "safe_address": safe_address,
                "confirmed": confirmed,
                "cleared": cleared,
            })

    @staticmethod
    def _mask_address(address: str) -> str:
        """Mask middle portion of address for privacy."""
        if len(address) < 10:
            return address
        return f"{address[:6]}...{address[-4:]}"

    def _write_audit_log(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write to audit log."""
        audit_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "data": data,
        }

        if self._config.audit_log_path:
            try:
                with open(self._config.audit_log_path, "a") as f:
                    f.write(json.dumps(audit_entry, default=str) + "\n")
            except OSError as e:
                self._logger.error(f"Failed to write audit log: {e}")
        else:
            self._logger.info(
                f"AUDIT: {event_type}",
                extra={"audit": audit_entry},
            )


# Global logger instance
_engine_logger: Optional[EngineLogger] = None


def get_engine_logger(
    name: str = "safe_tx_engine",
    config: Optional[LoggingConfig] = None,
) -> EngineLogger:
    """Get the global engine logger instance."""
    global _engine_logger
    if _engine_logger is None:
        _engine_logger = EngineLogger(name, config)
    return _engine_logger


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Log level
        format_string: Custom format string
        json_format: Use JSON formatting
    """
    if format_string is None:
        if json_format:
            format_string = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        else:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_string,
    )

    logging.getLogger("safe_tx_engine").setLevel(getattr(logging, level.upper()))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
