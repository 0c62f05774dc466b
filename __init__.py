"""
Safe Account Abstraction Kit

Builds, hashes, signs and serializes ERC-4337 user operations for Safe
smart accounts driven by the Safe 4337 module, including passkey (WebAuthn)
owners. Bundler and node access are pluggable.
"""

# Main account object
from smart_account import SafeAccount, SafeAccountV0_2_0, SafeAccountV0_3_0

# Configuration
from config import SAFE_4337_V0_2_0, SAFE_4337_V0_3_0, SafeDeployment, SmartAccountConfig

# Individual components for advanced usage
from addresses import create_proxy_address, derive_address, derive_webauthn_verifier_address
from bundler import BundlerClient, NodeClient, create_clients
from call_data import decode_call_data, encode_batch, encode_single, prepend_approve
from errors import AbstractionKitError, BadDataError, BundlerError, DependencyError, ValidationError
from initializer import encode_factory_data, encode_initializer
from multisend import decode_multisend, decode_multisend_call_data, encode_multisend
from operation_builder import UserOperationBuilder, UserOperationOverrides
from operation_hash import get_safe_operation_hash
from signatures import WebAuthnContext, assemble_signature, create_webauthn_signature
from user_operations import (
    Operation,
    SignerSignaturePair,
    SubTransaction,
    UserOperationV6,
    UserOperationV7,
    WebAuthnPublicKey,
)

__version__ = "1.0.0"

__all__ = [
    "SafeAccount",
    "SafeAccountV0_2_0",
    "SafeAccountV0_3_0",
    "SafeDeployment",
    "SAFE_4337_V0_2_0",
    "SAFE_4337_V0_3_0",
    "SmartAccountConfig",
    "BundlerClient",
    "NodeClient",
    "create_clients",
    "create_proxy_address",
    "derive_address",
    "derive_webauthn_verifier_address",
    "decode_call_data",
    "encode_batch",
    "encode_single",
    "prepend_approve",
    "encode_factory_data",
    "encode_initializer",
    "decode_multisend",
    "decode_multisend_call_data",
    "encode_multisend",
    "UserOperationBuilder",
    "UserOperationOverrides",
    "get_safe_operation_hash",
    "WebAuthnContext",
    "assemble_signature",
    "create_webauthn_signature",
    "Operation",
    "SignerSignaturePair",
    "SubTransaction",
    "UserOperationV6",
    "UserOperationV7",
    "WebAuthnPublicKey",
    "AbstractionKitError",
    "BadDataError",
    "BundlerError",
    "DependencyError",
    "ValidationError",
]
