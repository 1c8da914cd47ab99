"""Proposing new Safe transactions (and adding confirmations) to the gateway."""
from __future__ import annotations

import logging
from typing import Optional

from .config import get_config
from .gateway_client import GatewayClient, ProposeTransactionRequest
from .logging_utils import EngineLogger, OperationType, get_engine_logger
from .models import TransactionData, TransactionDetails
from .safe_contracts import compute_safe_tx_hash

logger = logging.getLogger(__name__)


async def propose_transaction(
    gateway: GatewayClient,
    chain_id: str,
    safe_address: str,
    tx: TransactionData,
    sender: str,
    signature: Optional[str] = None,
    safe_version: Optional[str] = None,
    origin: Optional[str] = None,
    engine_logger: Optional[EngineLogger] = None,
) -> TransactionDetails:
    """Hash ``tx`` for the Safe and submit it with the sender's signature.

    Proposing an already known transaction with a new signature adds that
    confirmation. Returns the gateway's canonical details.
    """
    version = safe_version or get_config().get_latest_safe_version(chain_id)
    safe_tx_hash = compute_safe_tx_hash(safe_address, int(chain_id), version, tx)

    log = engine_logger if engine_logger is not None else get_engine_logger()
    async with log.operation_context(
        OperationType.PROPOSAL,
        chain_id,
        safe_address=safe_address,
        safe_tx_hash=safe_tx_hash,
        nonce=tx.nonce,
    ) as ctx:
        details = await gateway.propose_transaction(
            chain_id,
            safe_address,
            ProposeTransactionRequest(
                tx=tx,
                safe_tx_hash=safe_tx_hash,
                sender=sender,
                signature=signature,
                origin=origin,
            ),
        )
        ctx.metadata["tx_id"] = details.tx_id
    return details
