"""
Configuration and deployment constants for Safe ERC-4337 accounts
"""

import os
from dataclasses import dataclass

from web3 import Web3

# Network constants
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
SENTINEL_OWNERS = "0x0000000000000000000000000000000000000001"

# Function selectors
SETUP_SELECTOR = bytes.fromhex("b63e800d")
MULTISEND_SELECTOR = bytes.fromhex("8d80ff0a")
ENABLE_MODULES_SELECTOR = bytes.fromhex("8d0dc49f")
CONFIGURE_SHARED_SIGNER_SELECTOR = bytes.fromhex("0dd9692f")
CREATE_WEBAUTHN_SIGNER_SELECTOR = bytes.fromhex("0d2f0489")
SWAP_OWNER_SELECTOR = bytes.fromhex("e318b52b")
REMOVE_OWNER_SELECTOR = bytes.fromhex("f8dc5dd9")
ADD_OWNER_WITH_THRESHOLD_SELECTOR = bytes.fromhex("0d582f13")
CREATE_PROXY_WITH_NONCE_SELECTOR = bytes.fromhex("1688f0b9")
GET_OWNERS_SELECTOR = Web3.keccak(text="getOwners()")[:4]
APPROVE_SELECTOR = Web3.keccak(text="approve(address,uint256)")[:4]

# Safe4337Module executor functions
EXECUTE_USER_OP_SELECTOR = Web3.keccak(text="executeUserOp(address,uint256,bytes,uint8)")[:4]
EXECUTE_USER_OP_WITH_ERROR_STRING_SELECTOR = Web3.keccak(
    text="executeUserOpWithErrorString(address,uint256,bytes,uint8)"
)[:4]
EXECUTOR_SELECTORS = (EXECUTE_USER_OP_WITH_ERROR_STRING_SELECTOR, EXECUTE_USER_OP_SELECTOR)

# Proxy creation code of the WebAuthn signer proxy, the signer factory deploys
# it with (singleton, x, y, verifiers) appended as constructor arguments.
WEBAUTHN_SIGNER_PROXY_CREATION_CODE = bytes.fromhex(
    "61010060405234801561001157600080fd5b506040516101ee3803806101ee83398101604081905261003091610058565b"
    "6001600160a01b0390931660805260a09190915260c0526001600160b01b031660e0526100bc565b600080600080608085"
    "8703121561006e57600080fd5b84516001600160a01b038116811461008557600080fd5b60208601516040870151606088"
    "015192965090945092506001600160b01b03811681146100b157600080fd5b939692955090935050565b60805160a05160"
    "c05160e05160ff6100ef60003960006008015260006031015260006059015260006080015260ff6000f3fe608060408190"
    "527f00000000000000000000000000000000000000000000000000000000000000003660b681018290527f000000000000"
    "000000000000000000000000000000000000000000000000000060a082018190527f000000000000000000000000000000"
    "00000000000000000000000000000000008285018190527f0000000000000000000000000000000000000000000000000000"
    "0000000000009490939192600082376000806056360183885af490503d6000803e8060c3573d6000fd5b503d6000f3fea264"
    "6970667358221220ddd9bb059ba7a6497d560ca97aadf4dbf0476f578378554a50d41c6bb654beae64736f6c634300081800"
    "33"
)

# Dummy validity bounds used while estimating gas
MAX_VALIDITY_TIMESTAMP = 0xFFFFFFFFFFFF

# Extra verification gas per signer not covered by bundler estimates
VERIFICATION_GAS_PER_SIGNER = 55_000


@dataclass(frozen=True)
class SafeDeployment:
    """Addresses of one deployed set of Safe 4337 contracts"""

    module_address: str
    module_setup_address: str
    entry_point_address: str
    # v0.2.0 modules speak the merged initCode/paymasterAndData shape (EntryPoint v0.6)
    merged_blob_version: bool
    singleton_address: str = "0x29fcB43b46531BcA003ddC8FCB67FFE91900C762"
    singleton_init_hash: str = "0xe298282cefe913ab5d282047161268a8222e4bd4ed106300c547894bbefd31ee"
    factory_address: str = "0x4e1DCf7AD4e460CfD30791CCC4F9c8a4f820ec67"
    multisend_address: str = "0x38869bf66a61cF6bDB996A6aE40D5853Fd43B526"
    webauthn_shared_signer: str = "0xfD90FAd33ee8b58f32c00aceEad1358e4AFC23f9"
    webauthn_signer_singleton: str = "0x270D7E4a57E6322f336261f3EaE2BADe72E68d72"
    webauthn_signer_factory: str = "0xF7488fFbe67327ac9f37D5F722d83Fc900852Fbf"
    webauthn_contract_verifier: str = "0x445a0683e494ea0c5AF3E83c5159fBE47Cf9e765"
    # zero address means no EIP-7212 precompile
    webauthn_precompile_verifier: str = ZERO_ADDRESS
    executor_selector: bytes = EXECUTE_USER_OP_WITH_ERROR_STRING_SELECTOR


SAFE_4337_V0_2_0 = SafeDeployment(
    module_address="0xa581c4A4DB7175302464fF3C06380BC3270b4037",
    module_setup_address="0x8EcD4ec46D4D2a6B64fE960B3D64e8B94B2234eb",
    entry_point_address=ENTRYPOINT_V06,
    merged_blob_version=True,
)

SAFE_4337_V0_3_0 = SafeDeployment(
    module_address="0x75cf11467937ce3F2f357CE24ffc3DBF8fD5c226",
    module_setup_address="0x2dd68b007B46fBe91B9A7c3EDa5A7a1063cB5b47",
    entry_point_address=ENTRYPOINT_V07,
    merged_blob_version=False,
)


class SmartAccountConfig:
    """Network configuration for talking to a node and a bundler"""

    def __init__(self):
        self.node_rpc_url = os.environ.get('NODE_RPC_URL')
        if not self.node_rpc_url:
            raise ValueError("NODE_RPC_URL environment variable is required")

        self.bundler_rpc_url = os.environ.get('BUNDLER_RPC_URL')
        if not self.bundler_rpc_url:
            raise ValueError("BUNDLER_RPC_URL environment variable is required")

        self.chain_id = int(os.environ.get('CHAIN_ID', '11155111'))
        self.request_timeout = int(os.environ.get('RPC_TIMEOUT', '30'))
