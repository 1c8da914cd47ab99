"""
Execution of fully signed Safe transactions.

Three backends share one contract: take a request, put an execTransaction
on chain (or in a relayer's queue), and register the resulting artifact with
the pending tracker before returning.

- PrivateKeyExecutor: the owner's key signs the outer transaction locally
- LedgerExecutor: a hardware wallet signs and sends through an external service
- RelayExecutor: a sponsor relays the transaction, identified by a task id
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, Optional, Protocol, Tuple, TypeVar, Union

from eth_account import Account
from web3 import Web3

from .config import ExecutionConfig, get_config
from .exceptions import (
    ConfigurationError,
    GatewayError,
    MissingDerivationPath,
    RelayRejected,
    RPCError,
    SafeTransactionNotFound,
    SignerUnavailable,
    WrongSignerType,
)
from .gateway_client import GatewayClient
from .logging_utils import EngineLogger, OperationType, get_engine_logger
from .models import (
    ExecutionKind,
    MultisigExecutionDetails,
    Operation,
    PendingExecutionRecord,
    SafeTransaction,
    TransactionData,
    TransactionDetails,
)
from .pending import PendingTxTracker, get_pending_tracker
from .relay_client import RelayClient
from .rpc_client import ChainProvider, get_chain_provider
from .safe_contracts import encode_exec_transaction
from .signatures import aggregate, encode
from .tx_info import Transfer, TransferType

logger = logging.getLogger(__name__)
T = TypeVar("T")


class ExecutionMethod(str, Enum):
    """Execution backends."""
    WITH_PK = "WITH_PK"
    WITH_LEDGER = "WITH_LEDGER"
    WITH_RELAY = "WITH_RELAY"


class SignerType(str, Enum):
    PRIVATE_KEY = "PRIVATE_KEY"
    LEDGER = "LEDGER"
    INJECTED = "INJECTED"


@dataclass
class SignerRecord:
    """A signer available to the current user."""
    address: str
    signer_type: SignerType
    derivation_path: Optional[str] = None


@dataclass
class FeeParams:
    """Fee overrides for the executor's own transaction."""
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_limit: Optional[int] = None
    nonce: Optional[int] = None


@dataclass
class ExecutionRequest:
    """What to execute, for which Safe, and as whom.

    ``safe_tx`` is required by the wallet backends; the relay backend
    re-derives the transaction from the gateway instead.
    """
    tx_id: str
    chain_id: str
    safe_address: str
    signer_address: Optional[str] = None
    safe_tx: Optional[SafeTransaction] = None
    fee_params: Optional[FeeParams] = None
    safe_version: Optional[str] = None


@dataclass
class ExecutionArtifact:
    """Outcome of a successful backend execution."""
    method: ExecutionMethod
    tx_id: str
    chain_id: str
    safe_address: str
    nonce: Optional[int] = None  # Safe nonce
    tx_hash: Optional[str] = None
    task_id: Optional[str] = None
    wallet_address: Optional[str] = None
    wallet_nonce: Optional[int] = None

    @property
    def kind(self) -> ExecutionKind:
        return ExecutionKind.RELAY if self.method == ExecutionMethod.WITH_RELAY else ExecutionKind.SINGLE


Register = Callable[[ExecutionArtifact], PendingExecutionRecord]
ProviderFactory = Callable[[str], ChainProvider]


class SignerRegistry(Protocol):
    async def get_signer(self, address: str) -> Optional[SignerRecord]: ...


class SecretStore(Protocol):
    async def get_private_key(self, address: str) -> Optional[str]: ...


@dataclass
class HardwareExecutionRequest:
    chain_id: str
    signer_address: str
    derivation_path: str
    to: str
    data: str
    value: int = 0
    fee_params: Optional[FeeParams] = None


class HardwareExecutionService(Protocol):
    """Signs and broadcasts a transaction on a hardware wallet; returns its hash."""

    async def execute_transaction(self, request: HardwareExecutionRequest) -> str: ...


class HardwareTransport(Protocol):
    async def disconnect(self) -> None: ...


def _require_safe_tx(request: ExecutionRequest) -> SafeTransaction:
    if request.safe_tx is None:
        raise ValueError(f"Execution of {request.tx_id} requires a signed Safe transaction")
    return request.safe_tx


async def load_private_key(secrets: SecretStore, address: str) -> str:
    """Fetch the key for ``address``; any store failure is SignerUnavailable."""
    try:
        private_key = await secrets.get_private_key(address)
    except Exception as e:
        logger.error(f"Failed to load private key for {address}: {e}")
        raise SignerUnavailable(f"Private key unavailable: {e}", address) from e
    if not private_key:
        logger.error(f"Private key not found for {address}")
        raise SignerUnavailable("Private key not found", address)
    return private_key


def build_exec_calldata(safe_tx: SafeTransaction) -> str:
    """execTransaction calldata carrying the transaction's encoded signatures."""
    return encode_exec_transaction(safe_tx.data, encode(safe_tx.signatures))


async def send_signed_transaction(
    provider: ChainProvider,
    private_key: str,
    chain_id: str,
    to: str,
    data: str,
    value: int = 0,
    fee_params: Optional[FeeParams] = None,
    config: Optional[ExecutionConfig] = None,
) -> Tuple[str, str, int]:
    """Sign an EIP-1559 transaction locally and broadcast it.

    Returns (tx_hash, sender address, sender nonce used).
    """
    config = config or get_config().execution
    fee_params = fee_params or FeeParams()
    account = Account.from_key(private_key)
    to = Web3.to_checksum_address(to)

    nonce = fee_params.nonce
    if nonce is None:
        nonce = await provider.get_transaction_count(account.address, "pending")

    gas_limit = fee_params.gas_limit
    if gas_limit is None:
        estimate = await provider.estimate_gas(
            {"from": account.address, "to": to, "data": data, "value": hex(value)}
        )
        gas_limit = estimate * (100 + config.gas_limit_buffer_percent) // 100

    priority_fee = fee_params.max_priority_fee_per_gas
    if priority_fee is None:
        try:
            priority_fee = await provider.get_max_priority_fee()
        except RPCError:
            # Chains without eth_maxPriorityFeePerGas
            priority_fee = config.default_priority_fee_wei
    max_fee = fee_params.max_fee_per_gas
    if max_fee is None:
        max_fee = await provider.get_base_fee() * 2 + priority_fee

    signed = Account.sign_transaction(
        {
            "type": 2,
            "chainId": int(chain_id),
            "nonce": nonce,
            "to": to,
            "value": value,
            "data": data,
            "gas": gas_limit,
            "maxFeePerGas": max_fee,
            "maxPriorityFeePerGas": priority_fee,
        },
        private_key,
    )
    tx_hash = await provider.send_raw_transaction(Web3.to_hex(signed.raw_transaction))
    return tx_hash, account.address, nonce


def safe_transaction_from_details(details: TransactionDetails) -> SafeTransaction:
    """Rebuild a signed Safe transaction from gateway details.

    Native transfers without ``txData`` are rebuilt from the transfer info.
    """
    execution = details.detailed_execution_info
    if not isinstance(execution, MultisigExecutionDetails):
        raise SafeTransactionNotFound(details.tx_id, "Not a multisig transaction")

    if details.tx_data is not None:
        to = details.tx_data.to
        value = details.tx_data.value
        data = details.tx_data.hex_data or "0x"
        operation = details.tx_data.operation
    elif (
        isinstance(details.tx_info, Transfer)
        and details.tx_info.transfer_type == TransferType.NATIVE_COIN
        and details.tx_info.recipient
    ):
        to = details.tx_info.recipient
        value = details.tx_info.value or "0"
        data = "0x"
        operation = Operation.CALL
    else:
        raise SafeTransactionNotFound(details.tx_id, "Transaction data missing")

    safe_tx = SafeTransaction(
        data=TransactionData(
            to=to,
            value=value,
            data=data,
            operation=operation,
            safe_tx_gas=execution.safe_tx_gas,
            base_gas=execution.base_gas,
            gas_price=execution.gas_price,
            gas_token=execution.gas_token,
            refund_receiver=execution.refund_receiver,
            nonce=execution.nonce,
        )
    )
    aggregate(safe_tx, execution.confirmations)
    return safe_tx


class ExecutionBackend(ABC):
    """A way of putting a signed Safe transaction on chain."""

    method: ExecutionMethod

    def __init__(
        self,
        provider_factory: ProviderFactory = get_chain_provider,
        engine_logger: Optional[EngineLogger] = None,
    ):
        self._provider_factory = provider_factory
        self._engine_logger = engine_logger

    @property
    def _log(self) -> EngineLogger:
        return self._engine_logger if self._engine_logger is not None else get_engine_logger()

    @abstractmethod
    async def execute(self, request: ExecutionRequest, register: Register) -> PendingExecutionRecord:
        """Execute and hand the artifact to ``register`` as soon as it exists."""


class PrivateKeyExecutor(ExecutionBackend):
    """Executes with a private key held by the engine's secret store."""

    method = ExecutionMethod.WITH_PK

    def __init__(
        self,
        secrets: SecretStore,
        provider_factory: ProviderFactory = get_chain_provider,
        engine_logger: Optional[EngineLogger] = None,
        config: Optional[ExecutionConfig] = None,
    ):
        super().__init__(provider_factory, engine_logger)
        self._secrets = secrets
        self._config = config

    async def execute(self, request: ExecutionRequest, register: Register) -> PendingExecutionRecord:
        safe_tx = _require_safe_tx(request)
        if not request.signer_address:
            raise SignerUnavailable("No signer selected")
        private_key = await load_private_key(self._secrets, request.signer_address)

        provider = self._provider_factory(request.chain_id)
        async with self._log.operation_context(
            OperationType.DISPATCH,
            request.chain_id,
            method=self.method.value,
            tx_id=request.tx_id,
        ) as ctx:
            tx_hash, wallet_address, wallet_nonce = await send_signed_transaction(
                provider,
                private_key,
                request.chain_id,
                to=request.safe_address,
                data=build_exec_calldata(safe_tx),
                fee_params=request.fee_params,
                config=self._config,
            )
            ctx.metadata["tx_hash"] = tx_hash

        return register(
            ExecutionArtifact(
                method=self.method,
                tx_id=request.tx_id,
                chain_id=request.chain_id,
                safe_address=request.safe_address,
                nonce=safe_tx.data.nonce,
                tx_hash=tx_hash,
                wallet_address=wallet_address,
                wallet_nonce=wallet_nonce,
            )
        )


class LedgerExecutor(ExecutionBackend):
    """Executes through a hardware wallet.

    Signer checks run before the device is touched. Once the hardware
    service has been called the transport is disconnected on every path;
    the pending record is registered before that disconnect.
    """

    method = ExecutionMethod.WITH_LEDGER

    def __init__(
        self,
        signers: SignerRegistry,
        hardware: HardwareExecutionService,
        transport: HardwareTransport,
        provider_factory: ProviderFactory = get_chain_provider,
        engine_logger: Optional[EngineLogger] = None,
    ):
        super().__init__(provider_factory, engine_logger)
        self._signers = signers
        self._hardware = hardware
        self._transport = transport

    async def _resolve_signer(self, address: Optional[str]) -> SignerRecord:
        signer = await self._signers.get_signer(address) if address else None
        if signer is None:
            raise SignerUnavailable("No signer found", address)
        if signer.signer_type != SignerType.LEDGER:
            raise WrongSignerType(SignerType.LEDGER.value.capitalize(), signer.signer_type.value)
        if not signer.derivation_path:
            raise MissingDerivationPath(signer.address)
        return signer

    async def _disconnect_after_failure(self) -> None:
        try:
            await self._transport.disconnect()
        except Exception:
            # The execution error is what the caller needs to see
            logger.exception("Hardware transport disconnect failed after execution error")

    async def _run_on_device(
        self,
        hardware_request: HardwareExecutionRequest,
        after_send: Optional[Callable[[str], Awaitable[T]]] = None,
    ) -> Union[str, T]:
        """Send on the device, run ``after_send`` with the tx hash, then disconnect."""
        try:
            tx_hash = await self._hardware.execute_transaction(hardware_request)
            result = await after_send(tx_hash) if after_send is not None else tx_hash
        except Exception:
            await self._disconnect_after_failure()
            raise

        await self._transport.disconnect()
        return result

    async def send_transaction(
        self,
        chain_id: str,
        signer_address: Optional[str],
        to: str,
        data: str,
        fee_params: Optional[FeeParams] = None,
    ) -> str:
        """Sign and broadcast an arbitrary call on the hardware wallet."""
        signer = await self._resolve_signer(signer_address)
        return await self._run_on_device(
            HardwareExecutionRequest(
                chain_id=chain_id,
                signer_address=signer.address,
                derivation_path=signer.derivation_path,
                to=to,
                data=data,
                fee_params=fee_params,
            )
        )

    async def execute(self, request: ExecutionRequest, register: Register) -> PendingExecutionRecord:
        signer = await self._resolve_signer(request.signer_address)
        safe_tx = _require_safe_tx(request)
        provider = self._provider_factory(request.chain_id)

        async def register_sent(tx_hash: str) -> PendingExecutionRecord:
            wallet_nonce = await provider.get_transaction_count(signer.address, "pending")
            return register(
                ExecutionArtifact(
                    method=self.method,
                    tx_id=request.tx_id,
                    chain_id=request.chain_id,
                    safe_address=request.safe_address,
                    nonce=safe_tx.data.nonce,
                    tx_hash=tx_hash,
                    wallet_address=signer.address,
                    wallet_nonce=wallet_nonce,
                )
            )

        async with self._log.operation_context(
            OperationType.DISPATCH,
            request.chain_id,
            method=self.method.value,
            tx_id=request.tx_id,
        ) as ctx:
            record = await self._run_on_device(
                HardwareExecutionRequest(
                    chain_id=request.chain_id,
                    signer_address=signer.address,
                    derivation_path=signer.derivation_path,
                    to=request.safe_address,
                    data=build_exec_calldata(safe_tx),
                    fee_params=request.fee_params,
                ),
                after_send=register_sent,
            )
            ctx.metadata["tx_hash"] = record.tx_hash
        return record


class RelayExecutor(ExecutionBackend):
    """Executes through a sponsoring relayer."""

    method = ExecutionMethod.WITH_RELAY

    def __init__(
        self,
        gateway: GatewayClient,
        relay: RelayClient,
        engine_logger: Optional[EngineLogger] = None,
    ):
        super().__init__(engine_logger=engine_logger)
        self._gateway = gateway
        self._relay = relay

    async def _fetch_details(self, chain_id: str, tx_id: str) -> TransactionDetails:
        try:
            return await self._gateway.get_transaction_details(chain_id, tx_id)
        except GatewayError as e:
            raise SafeTransactionNotFound(tx_id, f"Transaction details unavailable ({e.message})") from e

    async def execute(self, request: ExecutionRequest, register: Register) -> PendingExecutionRecord:
        details = await self._fetch_details(request.chain_id, request.tx_id)
        safe_tx = safe_transaction_from_details(details)
        version = request.safe_version or get_config().get_latest_safe_version(request.chain_id)

        async with self._log.operation_context(
            OperationType.RELAY_SUBMIT,
            request.chain_id,
            tx_id=request.tx_id,
            version=version,
        ) as ctx:
            task_id = await self._relay.relay_transaction(
                request.chain_id,
                to=request.safe_address,
                data=build_exec_calldata(safe_tx),
                version=version,
            )
            if not task_id:
                raise RelayRejected()
            ctx.metadata["task_id"] = task_id

        return register(
            ExecutionArtifact(
                method=self.method,
                tx_id=request.tx_id,
                chain_id=request.chain_id,
                safe_address=request.safe_address,
                nonce=safe_tx.data.nonce,
                task_id=task_id,
            )
        )


class ExecutionDispatcher:
    """Routes execution requests to a backend and registers the results."""

    def __init__(
        self,
        backends: Iterable[ExecutionBackend],
        tracker: Optional[PendingTxTracker] = None,
        engine_logger: Optional[EngineLogger] = None,
    ):
        self._backends: Dict[ExecutionMethod, ExecutionBackend] = {b.method: b for b in backends}
        self._tracker = tracker
        self._engine_logger = engine_logger
        self._last_requests: Dict[str, Tuple[ExecutionMethod, ExecutionRequest]] = {}

    @property
    def tracker(self) -> PendingTxTracker:
        return self._tracker if self._tracker is not None else get_pending_tracker()

    def _register(self, artifact: ExecutionArtifact) -> PendingExecutionRecord:
        record = self.tracker.start(
            artifact.tx_id,
            artifact.kind,
            chain_id=artifact.chain_id,
            safe_address=artifact.safe_address,
            nonce=artifact.nonce,
            tx_hash=artifact.tx_hash,
            task_id=artifact.task_id,
            wallet_address=artifact.wallet_address,
            wallet_nonce=artifact.wallet_nonce,
        )
        engine_logger = self._engine_logger if self._engine_logger is not None else get_engine_logger()
        engine_logger.log_dispatch(
            artifact.method.value,
            artifact.tx_id,
            artifact.chain_id,
            artifact.safe_address,
            tx_hash=artifact.tx_hash,
            task_id=artifact.task_id,
            wallet_address=artifact.wallet_address,
        )
        return record

    async def dispatch(self, method: ExecutionMethod, request: ExecutionRequest) -> PendingExecutionRecord:
        """Execute ``request`` with the backend for ``method``.

        The returned record is already in the tracker. Backend errors
        propagate unchanged.
        """
        backend = self._backends.get(method)
        if backend is None:
            raise ConfigurationError(f"No backend configured for {method.value}")
        self._last_requests[request.tx_id] = (method, request)
        record = await backend.execute(request, self._register)
        self._last_requests.pop(request.tx_id, None)
        return record

    async def retry(self, tx_id: str) -> PendingExecutionRecord:
        """Re-run the last failed dispatch of ``tx_id`` with the same parameters."""
        if tx_id not in self._last_requests:
            raise ConfigurationError(f"Nothing to retry for {tx_id}")
        method, request = self._last_requests[tx_id]
        return await self.dispatch(method, request)
