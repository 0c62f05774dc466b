"""
UserOperation and transaction types for Safe smart accounts
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Union

from hexbytes import HexBytes
from web3 import Web3

from config import ZERO_ADDRESS
from errors import ValidationError


class Operation(IntEnum):
    """Safe execution kind of a transaction"""
    CALL = 0
    DELEGATECALL = 1


def to_bytes(data: Union[bytes, str, None]) -> bytes:
    """Normalize hex strings and bytes-likes to bytes"""
    if data is None:
        return b''
    return bytes(HexBytes(data))


def to_hex(data: Union[bytes, str, None]) -> str:
    return "0x" + to_bytes(data).hex()


@dataclass(frozen=True)
class SubTransaction:
    """A single call executed by the account, alone or inside a multisend batch"""
    to: str
    value: int = 0
    data: bytes = b''
    operation: Operation = Operation.CALL

    def __post_init__(self):
        object.__setattr__(self, 'to', Web3.to_checksum_address(self.to))
        object.__setattr__(self, 'data', to_bytes(self.data))
        object.__setattr__(self, 'operation', Operation(self.operation))
        if self.value < 0:
            raise ValidationError("transaction value can't be negative")


@dataclass(frozen=True)
class WebAuthnPublicKey:
    """Passkey public key coordinates on the P-256 curve"""
    x: int
    y: int


# An owner is either a plain address or a WebAuthn public key
Signer = Union[str, WebAuthnPublicKey]


@dataclass
class SignerSignaturePair:
    """A signer and its signature over the SafeOp hash"""
    signer: Signer
    signature: bytes
    is_contract_signature: Optional[bool] = None

    def __post_init__(self):
        self.signature = to_bytes(self.signature)


@dataclass
class BaseUserOperation:
    """Fields shared by both EntryPoint wire formats"""
    sender: str = ZERO_ADDRESS
    nonce: int = 0
    call_data: bytes = b''
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    signature: bytes = b''

    def __post_init__(self):
        self.call_data = to_bytes(self.call_data)
        self.signature = to_bytes(self.signature)

    def _base_rpc_dict(self) -> Dict:
        return {
            "sender": Web3.to_checksum_address(self.sender),
            "nonce": hex(self.nonce),
            "callData": to_hex(self.call_data),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "signature": to_hex(self.signature),
        }


@dataclass
class UserOperationV6(BaseUserOperation):
    """EntryPoint v0.6 operation, init code and paymaster data travel as merged blobs"""
    init_code: bytes = b''
    paymaster_and_data: bytes = b''

    def __post_init__(self):
        super().__post_init__()
        self.init_code = to_bytes(self.init_code)
        self.paymaster_and_data = to_bytes(self.paymaster_and_data)

    def to_rpc_dict(self) -> Dict:
        """Convert to the bundler JSON-RPC format (EntryPoint v0.6)"""
        rpc_dict = self._base_rpc_dict()
        rpc_dict.update({
            "initCode": to_hex(self.init_code),
            "paymasterAndData": to_hex(self.paymaster_and_data),
        })
        return rpc_dict


@dataclass
class UserOperationV7(BaseUserOperation):
    """EntryPoint v0.7 operation, factory and paymaster data travel as split fields"""
    factory: Optional[str] = None
    factory_data: Optional[bytes] = None
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: Optional[int] = None
    paymaster_post_op_gas_limit: Optional[int] = None
    paymaster_data: Optional[bytes] = None

    def __post_init__(self):
        super().__post_init__()
        # absent stays None, it is serialized differently from empty
        if self.factory_data is not None:
            self.factory_data = to_bytes(self.factory_data)
        if self.paymaster_data is not None:
            self.paymaster_data = to_bytes(self.paymaster_data)

    def to_rpc_dict(self) -> Dict:
        """Convert to the bundler JSON-RPC format (EntryPoint v0.7)"""
        rpc_dict = self._base_rpc_dict()

        # Handle optional factory fields
        factory = self.factory
        rpc_dict.update({
            "factory": factory,
            "factoryData": to_hex(self.factory_data) if factory else None,
        })

        # Handle optional paymaster fields
        paymaster = self.paymaster
        if paymaster:
            rpc_dict.update({
                "paymaster": paymaster,
                "paymasterVerificationGasLimit": hex(self.paymaster_verification_gas_limit or 0),
                "paymasterPostOpGasLimit": hex(self.paymaster_post_op_gas_limit or 0),
                "paymasterData": to_hex(self.paymaster_data),
            })
        else:
            rpc_dict.update({
                "paymaster": None,
                "paymasterVerificationGasLimit": None,
                "paymasterPostOpGasLimit": None,
                "paymasterData": None,
            })

        return rpc_dict


UserOperation = Union[UserOperationV6, UserOperationV7]
