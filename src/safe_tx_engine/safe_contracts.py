"""Safe contract encoding helpers.

Uses Safe's canonical infrastructure (same addresses on all EVM chains via
deterministic deployment):
- SafeProxyFactory.createProxyWithNonce for account creation
- Safe.setup as the proxy initializer
- Safe.execTransaction for executing signed transactions
- MultiSendCallOnly for bundling creation with a first transaction

References:
- https://github.com/safe-global/safe-smart-account
- https://github.com/safe-global/safe-deployments
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from eth_abi import encode
from eth_abi.packed import encode_packed
from web3 import Web3

from .models import (
    ZERO_ADDRESS,
    Operation,
    PredictedAccountProps,
    ReplayedAccountProps,
    SafeSetupConfig,
    TransactionData,
    UndeployedAccountDescriptor,
)


# ============ Canonical Safe Addresses ============

SAFE_DEPLOYMENTS: Dict[str, Dict[str, str]] = {
    "1.3.0": {
        "proxy_factory": "0xa6B71E26C5e0845f74c812102Ca7114b6a896AB2",
        "safe_singleton": "0xd9Db270c1B5E3Bd161E8c8503c55cEABeE709552",
        "safe_singleton_l2": "0x3E5c63644E683549055b9Be8653de26E0B4CD36E",
        "fallback_handler": "0xf48f2B2d2a534e402487b3ee7C18c33Aec0Fe5e4",
        "multi_send": "0xA238CBeb142c10Ef7Ad8442C6D1f9E89e07e7761",
        "multi_send_call_only": "0x40A2aCCbd92BCA938b02010E17A5b8929b49130D",
    },
    "1.4.1": {
        "proxy_factory": "0x4e1DCf7AD4e460CfD30791CCC4F9c8a4f820ec67",
        "safe_singleton": "0x41675C099F32341bf84BFc5382aF534df5C7461a",
        "safe_singleton_l2": "0x29fcB43b46531BcA003ddC8FCB67FFE91900C762",
        "fallback_handler": "0xfd0732Dc9E303f09fCEf3a7388Ad10A83459Ec99",
        "multi_send": "0x38869bf66a61cF6bDB996A6aE40D5853Fd43B526",
        "multi_send_call_only": "0x9641d764fc13c8B624c04430C7356C1C7C8102e2",
    },
}

# Chains that get the plain singleton; all others get the event-emitting L2 one
L1_CHAIN_IDS = frozenset({"1", "11155111"})

EXEC_TRANSACTION_SIGNATURE = (
    "execTransaction(address,uint256,bytes,uint8,uint256,uint256,uint256,address,address,bytes)"
)
SETUP_SIGNATURE = "setup(address[],uint256,address,bytes,address,address,uint256,address)"
CREATE_PROXY_SIGNATURE = "createProxyWithNonce(address,bytes,uint256)"
MULTI_SEND_SIGNATURE = "multiSend(bytes)"

DOMAIN_SEPARATOR_TYPEHASH = Web3.keccak(
    text="EIP712Domain(uint256 chainId,address verifyingContract)"
)
# Safes before 1.3.0 do not include the chain id in their domain
DOMAIN_SEPARATOR_TYPEHASH_OLD = Web3.keccak(text="EIP712Domain(address verifyingContract)")
SAFE_TX_TYPEHASH = Web3.keccak(
    text="SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
    "uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
)
# Safes before 1.0.0 call baseGas "dataGas"
SAFE_TX_TYPEHASH_OLD = Web3.keccak(
    text="SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
    "uint256 dataGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
)


def _selector(signature: str) -> bytes:
    return Web3.keccak(text=signature)[:4]


def _checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


def _hex_to_bytes(data: str) -> bytes:
    data = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(data)


def parse_version(version: str) -> Tuple[int, ...]:
    """Numeric tuple of a Safe version; ``"1.3.0+L2"`` reads as ``(1, 3, 0)``."""
    core = version.split("+")[0].split("-")[0]
    return tuple(int(part) for part in core.split("."))


def get_safe_deployment(version: str) -> Dict[str, str]:
    """Canonical contract addresses for a Safe version.

    Versions without their own deployment entry fall back to the newest
    known deployment not newer than them.
    """
    if version in SAFE_DEPLOYMENTS:
        return SAFE_DEPLOYMENTS[version]
    wanted = parse_version(version)
    candidates = [v for v in SAFE_DEPLOYMENTS if parse_version(v) <= wanted]
    if not candidates:
        raise ValueError(f"No Safe deployment known for version {version}")
    return SAFE_DEPLOYMENTS[max(candidates, key=parse_version)]


# ============ Transaction hashing ============


def compute_domain_separator(safe_address: str, chain_id: int, version: str) -> bytes:
    if parse_version(version) >= (1, 3, 0):
        return Web3.keccak(
            encode(
                ["bytes32", "uint256", "address"],
                [DOMAIN_SEPARATOR_TYPEHASH, int(chain_id), _checksum(safe_address)],
            )
        )
    return Web3.keccak(
        encode(["bytes32", "address"], [DOMAIN_SEPARATOR_TYPEHASH_OLD, _checksum(safe_address)])
    )


def compute_safe_tx_hash(
    safe_address: str,
    chain_id: int,
    version: str,
    tx: TransactionData,
) -> str:
    """EIP-712 hash owners sign to confirm a Safe transaction."""
    typehash = SAFE_TX_TYPEHASH if parse_version(version) >= (1, 0, 0) else SAFE_TX_TYPEHASH_OLD
    struct_hash = Web3.keccak(
        encode(
            [
                "bytes32",
                "address",
                "uint256",
                "bytes32",
                "uint8",
                "uint256",
                "uint256",
                "uint256",
                "address",
                "address",
                "uint256",
            ],
            [
                typehash,
                _checksum(tx.to),
                tx.value_wei,
                Web3.keccak(tx.data_bytes),
                int(tx.operation),
                tx.safe_tx_gas,
                tx.base_gas,
                tx.gas_price,
                _checksum(tx.gas_token),
                _checksum(tx.refund_receiver),
                tx.nonce,
            ],
        )
    )
    domain = compute_domain_separator(safe_address, chain_id, version)
    return Web3.to_hex(Web3.keccak(b"\x19\x01" + domain + struct_hash))


# ============ Calldata ============


def encode_exec_transaction(tx: TransactionData, signatures: bytes) -> str:
    """Encode Safe.execTransaction calldata.

    Safe.execTransaction(
        address to,
        uint256 value,
        bytes data,
        uint8 operation,
        uint256 safeTxGas,
        uint256 baseGas,
        uint256 gasPrice,
        address gasToken,
        address refundReceiver,
        bytes signatures
    )
    """
    params = encode(
        [
            "address",
            "uint256",
            "bytes",
            "uint8",
            "uint256",
            "uint256",
            "uint256",
            "address",
            "address",
            "bytes",
        ],
        [
            _checksum(tx.to),
            tx.value_wei,
            tx.data_bytes,
            int(tx.operation),
            tx.safe_tx_gas,
            tx.base_gas,
            tx.gas_price,
            _checksum(tx.gas_token),
            _checksum(tx.refund_receiver),
            signatures,
        ],
    )
    return Web3.to_hex(_selector(EXEC_TRANSACTION_SIGNATURE) + params)


def encode_setup(config: SafeSetupConfig) -> bytes:
    """Encode the Safe.setup() initializer."""
    params = encode(
        [
            "address[]",
            "uint256",
            "address",
            "bytes",
            "address",
            "address",
            "uint256",
            "address",
        ],
        [
            [_checksum(owner) for owner in config.owners],
            config.threshold,
            _checksum(config.to),
            _hex_to_bytes(config.data),
            _checksum(config.fallback_handler),
            _checksum(config.payment_token),
            config.payment,
            _checksum(config.payment_receiver),
        ],
    )
    return _selector(SETUP_SIGNATURE) + params


def setup_config_from_props(props: PredictedAccountProps, version: str) -> SafeSetupConfig:
    """Setup arguments for a Safe predicted from owners and threshold."""
    fallback_handler = props.fallback_handler or get_safe_deployment(version)["fallback_handler"]
    return SafeSetupConfig(
        owners=tuple(props.owners),
        threshold=props.threshold,
        fallback_handler=fallback_handler,
    )


def encode_create_proxy_with_nonce(singleton: str, initializer: bytes, salt_nonce: int) -> str:
    """Encode SafeProxyFactory.createProxyWithNonce(singleton, initializer, saltNonce)."""
    params = encode(
        ["address", "bytes", "uint256"],
        [_checksum(singleton), initializer, salt_nonce],
    )
    return Web3.to_hex(_selector(CREATE_PROXY_SIGNATURE) + params)


def build_account_creation(
    descriptor: UndeployedAccountDescriptor,
    default_version: str,
) -> Tuple[str, str]:
    """Factory address and calldata that deploy an undeployed Safe.

    Predicted Safes use the version's canonical factory and singleton;
    replayed Safes reuse the factory and master copy of the original
    deployment so they land on the same address.
    """
    version = descriptor.version or default_version

    if descriptor.replayed_props is not None:
        props: ReplayedAccountProps = descriptor.replayed_props
        data = encode_create_proxy_with_nonce(
            props.master_copy_address,
            encode_setup(props.account_config),
            int(props.salt_nonce),
        )
        return _checksum(props.factory_address), data

    predicted = descriptor.deployment_props
    deployment = get_safe_deployment(version)
    singleton_key = "safe_singleton" if str(descriptor.chain_id) in L1_CHAIN_IDS else "safe_singleton_l2"
    data = encode_create_proxy_with_nonce(
        deployment[singleton_key],
        encode_setup(setup_config_from_props(predicted, version)),
        int(predicted.salt_nonce),
    )
    return _checksum(deployment["proxy_factory"]), data


def encode_multi_send(transactions: Iterable[Tuple[Operation, str, int, str]]) -> str:
    """Encode MultiSend.multiSend(bytes) for (operation, to, value, data) entries.

    Each entry is packed as uint8 operation, address to, uint256 value,
    uint256 data length, bytes data.
    """
    packed = b""
    for operation, to, value, data in transactions:
        payload = _hex_to_bytes(data)
        packed += encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [int(operation), _checksum(to), value, len(payload), payload],
        )
    return Web3.to_hex(_selector(MULTI_SEND_SIGNATURE) + encode(["bytes"], [packed]))


def get_multi_send_call_only(version: Optional[str], default_version: str) -> str:
    return _checksum(get_safe_deployment(version or default_version)["multi_send_call_only"])


__all__ = [
    "SAFE_DEPLOYMENTS",
    "ZERO_ADDRESS",
    "build_account_creation",
    "compute_domain_separator",
    "compute_safe_tx_hash",
    "encode_create_proxy_with_nonce",
    "encode_exec_transaction",
    "encode_multi_send",
    "encode_setup",
    "get_multi_send_call_only",
    "get_safe_deployment",
    "parse_version",
    "setup_config_from_props",
]
