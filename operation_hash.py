"""
EIP-712 SafeOp hashes signed by Safe owners, one schema per EntryPoint version
"""

from eth_abi import encode
from web3 import Web3

from errors import ValidationError
from user_operations import UserOperation, UserOperationV6, UserOperationV7, to_bytes

EIP712_DOMAIN_TYPE = "EIP712Domain(uint256 chainId,address verifyingContract)"

SAFE_OP_V6_TYPE = (
    "SafeOp(address safe,uint256 nonce,bytes initCode,bytes callData,"
    "uint256 callGasLimit,uint256 verificationGasLimit,uint256 preVerificationGas,"
    "uint256 maxFeePerGas,uint256 maxPriorityFeePerGas,bytes paymasterAndData,"
    "uint48 validAfter,uint48 validUntil,address entryPoint)"
)

SAFE_OP_V7_TYPE = (
    "SafeOp(address safe,uint256 nonce,bytes initCode,bytes callData,"
    "uint128 verificationGasLimit,uint128 callGasLimit,uint256 preVerificationGas,"
    "uint128 maxPriorityFeePerGas,uint128 maxFeePerGas,bytes paymasterAndData,"
    "uint48 validAfter,uint48 validUntil,address entryPoint)"
)

DOMAIN_TYPEHASH = Web3.keccak(text=EIP712_DOMAIN_TYPE)
SAFE_OP_V6_TYPEHASH = Web3.keccak(text=SAFE_OP_V6_TYPE)
SAFE_OP_V7_TYPEHASH = Web3.keccak(text=SAFE_OP_V7_TYPE)


def domain_separator(chain_id: int, module_address: str) -> bytes:
    return Web3.keccak(encode(
        ['bytes32', 'uint256', 'address'],
        [DOMAIN_TYPEHASH, chain_id, Web3.to_checksum_address(module_address)]
    ))


def v7_init_code(user_operation: UserOperationV7) -> bytes:
    """factory ++ factoryData, empty without a factory"""
    if user_operation.factory is None:
        return b''
    return bytes.fromhex(user_operation.factory[2:]) + to_bytes(user_operation.factory_data)


def v7_paymaster_and_data(user_operation: UserOperationV7) -> bytes:
    """paymaster ++ uint128 verification gas ++ uint128 postOp gas ++ paymasterData, each part optional"""
    if user_operation.paymaster is None:
        return b''
    paymaster_and_data = bytes.fromhex(user_operation.paymaster[2:])
    if user_operation.paymaster_verification_gas_limit is not None:
        paymaster_and_data += user_operation.paymaster_verification_gas_limit.to_bytes(16, 'big')
    if user_operation.paymaster_post_op_gas_limit is not None:
        paymaster_and_data += user_operation.paymaster_post_op_gas_limit.to_bytes(16, 'big')
    if user_operation.paymaster_data is not None:
        paymaster_and_data += to_bytes(user_operation.paymaster_data)
    return paymaster_and_data


def _safe_op_struct_hash_v6(op: UserOperationV6, valid_after: int, valid_until: int, entry_point: str) -> bytes:
    return Web3.keccak(encode(
        ['bytes32', 'address', 'uint256', 'bytes32', 'bytes32', 'uint256', 'uint256', 'uint256',
         'uint256', 'uint256', 'bytes32', 'uint48', 'uint48', 'address'],
        [
            SAFE_OP_V6_TYPEHASH,
            Web3.to_checksum_address(op.sender),
            op.nonce,
            Web3.keccak(to_bytes(op.init_code)),
            Web3.keccak(to_bytes(op.call_data)),
            op.call_gas_limit,
            op.verification_gas_limit,
            op.pre_verification_gas,
            op.max_fee_per_gas,
            op.max_priority_fee_per_gas,
            Web3.keccak(to_bytes(op.paymaster_and_data)),
            valid_after,
            valid_until,
            Web3.to_checksum_address(entry_point),
        ]
    ))


def _safe_op_struct_hash_v7(op: UserOperationV7, valid_after: int, valid_until: int, entry_point: str) -> bytes:
    return Web3.keccak(encode(
        ['bytes32', 'address', 'uint256', 'bytes32', 'bytes32', 'uint128', 'uint128', 'uint256',
         'uint128', 'uint128', 'bytes32', 'uint48', 'uint48', 'address'],
        [
            SAFE_OP_V7_TYPEHASH,
            Web3.to_checksum_address(op.sender),
            op.nonce,
            Web3.keccak(v7_init_code(op)),
            Web3.keccak(to_bytes(op.call_data)),
            op.verification_gas_limit,
            op.call_gas_limit,
            op.pre_verification_gas,
            op.max_priority_fee_per_gas,
            op.max_fee_per_gas,
            Web3.keccak(v7_paymaster_and_data(op)),
            valid_after,
            valid_until,
            Web3.to_checksum_address(entry_point),
        ]
    ))


def validate_time_range(valid_after: int, valid_until: int) -> None:
    if valid_after < 0:
        raise ValidationError("validAfter can't be negative")
    if valid_until < 0:
        raise ValidationError("validUntil can't be negative")
    if valid_after >= 2 ** 48 or valid_until >= 2 ** 48:
        raise ValidationError("validAfter and validUntil must fit in 48 bits")


def validate_gas_fields(user_operation: UserOperation) -> None:
    """Reject negative quantities, and values too wide for the v0.7 uint128 fields"""
    fields = {
        'nonce': user_operation.nonce,
        'callGasLimit': user_operation.call_gas_limit,
        'verificationGasLimit': user_operation.verification_gas_limit,
        'preVerificationGas': user_operation.pre_verification_gas,
        'maxFeePerGas': user_operation.max_fee_per_gas,
        'maxPriorityFeePerGas': user_operation.max_priority_fee_per_gas,
    }
    for name, value in fields.items():
        if value < 0:
            raise ValidationError(f"{name} can't be negative")
        if value >= 2 ** 256:
            raise ValidationError(f"{name} must fit in 256 bits")

    if not isinstance(user_operation, UserOperationV7):
        return
    uint128_fields = {
        'callGasLimit': user_operation.call_gas_limit,
        'verificationGasLimit': user_operation.verification_gas_limit,
        'maxFeePerGas': user_operation.max_fee_per_gas,
        'maxPriorityFeePerGas': user_operation.max_priority_fee_per_gas,
        'paymasterVerificationGasLimit': user_operation.paymaster_verification_gas_limit,
        'paymasterPostOpGasLimit': user_operation.paymaster_post_op_gas_limit,
    }
    for name, value in uint128_fields.items():
        if value is None:
            continue
        if value < 0 or value >= 2 ** 128:
            raise ValidationError(f"{name} must fit in 128 bits")


def get_safe_operation_hash(
    user_operation: UserOperation,
    chain_id: int,
    valid_after: int,
    valid_until: int,
    entry_point: str,
    module_address: str,
) -> bytes:
    """
    EIP-712 hash of the SafeOp struct for a user operation, bound to the chain and the
    4337 module that verifies it. The schema follows the operation's EntryPoint version,
    so entry_point and module_address must belong to the matching deployment.
    """
    if chain_id < 0:
        raise ValidationError("chainId can't be negative")
    validate_time_range(valid_after, valid_until)

    if isinstance(user_operation, UserOperationV6):
        struct_hash = _safe_op_struct_hash_v6
    elif isinstance(user_operation, UserOperationV7):
        struct_hash = _safe_op_struct_hash_v7
    else:
        raise TypeError(f"Unsupported user operation type {type(user_operation).__name__}")
    validate_gas_fields(user_operation)

    return Web3.keccak(
        b'\x19\x01'
        + domain_separator(chain_id, module_address)
        + struct_hash(user_operation, valid_after, valid_until, entry_point)
    )
