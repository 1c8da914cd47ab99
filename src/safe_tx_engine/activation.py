"""
Activation of counterfactual (not yet deployed) Safes.

Features:
- Standalone deployment through the owner's wallet or a sponsoring relay
- Deployment bundled with the Safe's first transaction in one MultiSend
- Deployment tracking with exponential-backoff transaction lookup
- Replaced (sped up or repriced) deployments count as success
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .config import ActivationConfig, get_config
from .exceptions import (
    ConfigurationError,
    RelayRejected,
    Reverted,
    SafeTxEngineError,
    SignerUnavailable,
    TransactionNotFound,
    TransactionReplaced,
)
from .executors import (
    ExecutionMethod,
    FeeParams,
    LedgerExecutor,
    ProviderFactory,
    SecretStore,
    build_exec_calldata,
    load_private_key,
    send_signed_transaction,
)
from .logging_utils import EngineLogger, OperationType, get_engine_logger
from .models import Operation, SafeTransaction, UndeployedAccountDescriptor
from .relay_client import RelayClient
from .relay_poller import RelayPollOutcome, RelayStatusPoller
from .rpc_client import ChainProvider, get_chain_provider
from .safe_contracts import build_account_creation, encode_multi_send, get_multi_send_call_only

logger = logging.getLogger(__name__)


class ActivationStatus(str, Enum):
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    REVERTED = "REVERTED"
    FAILED = "FAILED"


@dataclass
class ActivationSubmission:
    """A submitted deployment, identified by tx hash or relay task id."""
    chain_id: str
    safe_address: str
    method: ExecutionMethod
    tx_hash: Optional[str] = None
    task_id: Optional[str] = None


@dataclass
class ActivationResult:
    safe_address: str
    status: ActivationStatus
    tx_hash: Optional[str] = None
    error: Optional[SafeTxEngineError] = None


class CounterfactualActivator:
    """Deploys undeployed Safes and follows the deployment to a final status."""

    def __init__(
        self,
        secrets: Optional[SecretStore] = None,
        relay: Optional[RelayClient] = None,
        relay_poller: Optional[RelayStatusPoller] = None,
        ledger: Optional[LedgerExecutor] = None,
        provider_factory: ProviderFactory = get_chain_provider,
        config: Optional[ActivationConfig] = None,
        engine_logger: Optional[EngineLogger] = None,
    ):
        self._secrets = secrets
        self._relay = relay
        self._relay_poller = relay_poller
        self._ledger = ledger
        self._provider_factory = provider_factory
        self._config = config or get_config().activation
        self._engine_logger = engine_logger

    @property
    def _log(self) -> EngineLogger:
        return self._engine_logger if self._engine_logger is not None else get_engine_logger()

    def _version(self, descriptor: UndeployedAccountDescriptor) -> str:
        return descriptor.version or get_config().get_latest_safe_version(descriptor.chain_id)

    def build_creation(self, descriptor: UndeployedAccountDescriptor) -> tuple[str, str]:
        """(factory address, createProxyWithNonce calldata) for the descriptor."""
        return build_account_creation(
            descriptor, get_config().get_latest_safe_version(descriptor.chain_id)
        )

    async def _private_key(self, signer_address: Optional[str]) -> str:
        if self._secrets is None:
            raise ConfigurationError("Wallet activation requires a secret store")
        if not signer_address:
            raise SignerUnavailable("No signer selected")
        return await load_private_key(self._secrets, signer_address)

    async def activate(
        self,
        descriptor: UndeployedAccountDescriptor,
        method: ExecutionMethod,
        signer_address: Optional[str] = None,
        fee_params: Optional[FeeParams] = None,
    ) -> ActivationSubmission:
        """Deploy the Safe on its own."""
        factory, data = self.build_creation(descriptor)

        if method == ExecutionMethod.WITH_RELAY:
            if self._relay is None:
                raise ConfigurationError("Relay activation requires a relay client")
            task_id = await self._relay.relay_transaction(
                descriptor.chain_id, to=factory, data=data, version=self._version(descriptor)
            )
            if not task_id:
                raise RelayRejected("Safe deployment could not be relayed")
            logger.info(f"Relayed deployment of {descriptor.address}: task {task_id}")
            return ActivationSubmission(
                chain_id=descriptor.chain_id,
                safe_address=descriptor.address,
                method=method,
                task_id=task_id,
            )

        if method == ExecutionMethod.WITH_LEDGER:
            if self._ledger is None:
                raise ConfigurationError("Hardware activation requires a Ledger executor")
            tx_hash = await self._ledger.send_transaction(
                descriptor.chain_id, signer_address, to=factory, data=data, fee_params=fee_params
            )
            logger.info(f"Sent deployment of {descriptor.address} from hardware wallet: {tx_hash}")
            return ActivationSubmission(
                chain_id=descriptor.chain_id,
                safe_address=descriptor.address,
                method=method,
                tx_hash=tx_hash,
            )

        private_key = await self._private_key(signer_address)
        tx_hash, _, _ = await send_signed_transaction(
            self._provider_factory(descriptor.chain_id),
            private_key,
            descriptor.chain_id,
            to=factory,
            data=data,
            fee_params=fee_params,
        )
        logger.info(f"Sent deployment of {descriptor.address}: {tx_hash}")
        return ActivationSubmission(
            chain_id=descriptor.chain_id,
            safe_address=descriptor.address,
            method=method,
            tx_hash=tx_hash,
        )

    async def deploy_and_execute(
        self,
        descriptor: UndeployedAccountDescriptor,
        safe_tx: SafeTransaction,
        signer_address: str,
        fee_params: Optional[FeeParams] = None,
    ) -> ActivationSubmission:
        """Deploy the Safe and execute its first transaction in one MultiSend call."""
        factory, creation_data = self.build_creation(descriptor)
        batch = encode_multi_send(
            [
                (Operation.CALL, factory, 0, creation_data),
                (Operation.CALL, descriptor.address, 0, build_exec_calldata(safe_tx)),
            ]
        )
        multi_send = get_multi_send_call_only(
            descriptor.version, get_config().get_latest_safe_version(descriptor.chain_id)
        )

        private_key = await self._private_key(signer_address)
        tx_hash, _, _ = await send_signed_transaction(
            self._provider_factory(descriptor.chain_id),
            private_key,
            descriptor.chain_id,
            to=multi_send,
            data=batch,
            fee_params=fee_params,
        )
        logger.info(f"Sent deployment of {descriptor.address} with first transaction: {tx_hash}")
        return ActivationSubmission(
            chain_id=descriptor.chain_id,
            safe_address=descriptor.address,
            method=ExecutionMethod.WITH_PK,
            tx_hash=tx_hash,
        )

    async def _wait_for_transaction(self, provider: ChainProvider, tx_hash: str) -> Dict[str, Any]:
        for attempt in range(self._config.max_attempts):
            tx = await provider.get_transaction(tx_hash)
            if tx:
                return tx
            if attempt < self._config.max_attempts - 1:
                delay = self._config.calculate_delay(attempt)
                logger.debug(f"Deployment {tx_hash} not found yet, retrying in {delay:.0f}s")
                await asyncio.sleep(delay)
        raise TransactionNotFound(tx_hash, self._config.max_attempts)

    async def _is_replaced(self, provider: ChainProvider, tx_hash: str, tx: Dict[str, Any]) -> bool:
        # Dropped from the node while the sender's mined nonce moved past it
        if await provider.get_transaction(tx_hash):
            return False
        sender_nonce = await provider.get_transaction_count(tx["from"], "latest")
        return sender_nonce > int(tx["nonce"], 16)

    async def check_activation(self, chain_id: str, safe_address: str, tx_hash: str) -> ActivationResult:
        """Follow a deployment transaction to a final status.

        Raises TransactionNotFound if the chain never reports the
        transaction within the lookup attempts.
        """
        provider = self._provider_factory(chain_id)
        async with self._log.operation_context(
            OperationType.ACTIVATION, chain_id, safe_address=safe_address, tx_hash=tx_hash
        ) as ctx:
            tx = await self._wait_for_transaction(provider, tx_hash)
            result = await self._wait_for_receipt(provider, safe_address, tx_hash, tx)
            ctx.metadata["status"] = result.status.value
            return result

    async def _wait_for_receipt(
        self,
        provider: ChainProvider,
        safe_address: str,
        tx_hash: str,
        tx: Dict[str, Any],
    ) -> ActivationResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.receipt_timeout_seconds

        while loop.time() < deadline:
            try:
                receipt = await provider.get_transaction_receipt(tx_hash)
                if receipt is None and await self._is_replaced(provider, tx_hash, tx):
                    raise TransactionReplaced(tx_hash)
            except TransactionReplaced as e:
                logger.info(f"Deployment {tx_hash} of {safe_address} was replaced")
                return ActivationResult(
                    safe_address=safe_address,
                    status=ActivationStatus.SUCCESS,
                    tx_hash=e.replacement_hash or tx_hash,
                )

            if receipt is not None:
                block_number = int(receipt["blockNumber"], 16)
                if int(receipt.get("status", "0x1"), 16) == 0:
                    return ActivationResult(
                        safe_address=safe_address,
                        status=ActivationStatus.REVERTED,
                        tx_hash=tx_hash,
                        error=Reverted(tx_hash, block_number),
                    )
                current = await provider.get_block_number()
                if current - block_number + 1 >= self._config.confirmations_required:
                    return ActivationResult(
                        safe_address=safe_address,
                        status=ActivationStatus.SUCCESS,
                        tx_hash=tx_hash,
                    )

            await asyncio.sleep(self._config.receipt_poll_interval_seconds)

        logger.warning(f"Timed out waiting for deployment receipt {tx_hash}")
        return ActivationResult(
            safe_address=safe_address,
            status=ActivationStatus.FAILED,
            tx_hash=tx_hash,
        )

    async def check_activation_via_relay(self, chain_id: str, safe_address: str, task_id: str) -> ActivationResult:
        """Follow a relayed deployment through the relay poller."""
        if self._relay_poller is None:
            raise ConfigurationError("Relay tracking requires a relay poller")
        handle = self._relay_poller.start(task_id)
        result = await handle.wait()
        if result.outcome == RelayPollOutcome.SUCCESS:
            return ActivationResult(
                safe_address=safe_address,
                status=ActivationStatus.SUCCESS,
                tx_hash=result.tx_hash,
            )
        return ActivationResult(
            safe_address=safe_address,
            status=ActivationStatus.FAILED,
            tx_hash=result.tx_hash,
            error=result.to_error(),
        )

    async def track(self, submission: ActivationSubmission) -> ActivationResult:
        """Follow a submission to a final status, whichever way it was sent."""
        if submission.task_id:
            return await self.check_activation_via_relay(
                submission.chain_id, submission.safe_address, submission.task_id
            )
        if not submission.tx_hash:
            raise ValueError("Submission has neither a tx hash nor a task id")
        return await self.check_activation(
            submission.chain_id, submission.safe_address, submission.tx_hash
        )
