"""
Deterministic CREATE2 address derivation for Safe proxies and WebAuthn signer proxies
"""

from typing import Union

from eth_abi.packed import encode_packed
from hexbytes import HexBytes
from web3 import Web3

from config import WEBAUTHN_SIGNER_PROXY_CREATION_CODE, ZERO_ADDRESS
from errors import ValidationError

ZERO_SALT = b'\x00' * 32


def create2_address(deployer: str, salt: bytes, init_code_hash: Union[bytes, str]) -> str:
    """keccak256(0xff ++ deployer ++ salt ++ initCodeHash)[12:]"""
    digest = Web3.keccak(encode_packed(
        ['bytes1', 'address', 'bytes32', 'bytes32'],
        [b'\xff', Web3.to_checksum_address(deployer), salt, bytes(HexBytes(init_code_hash))]
    ))
    return Web3.to_checksum_address("0x" + bytes(digest[-20:]).hex())


def derive_address(
    init_hash: Union[bytes, str],
    c2_nonce: int,
    factory_address: str,
    singleton_init_hash: Union[bytes, str],
) -> str:
    """Compute the address a Safe proxy factory deploys to for a hashed initializer and salt nonce"""
    if c2_nonce < 0:
        raise ValidationError("c2Nonce can't be negative")

    salt = Web3.keccak(encode_packed(['bytes32', 'uint256'], [bytes(HexBytes(init_hash)), c2_nonce]))
    return create2_address(factory_address, salt, singleton_init_hash)


def create_proxy_address(
    initializer_call_data: bytes,
    c2_nonce: int,
    factory_address: str,
    singleton_init_hash: Union[bytes, str],
) -> str:
    """Compute the account address straight from the setup calldata"""
    return derive_address(Web3.keccak(initializer_call_data), c2_nonce, factory_address, singleton_init_hash)


def verifier_selector(precompile_verifier: str, contract_verifier: str) -> int:
    """
    Pack the uint176 verifier configuration used by the WebAuthn signer contracts:
    the low two bytes of the precompile address followed by the fallback verifier address.
    """
    if len(precompile_verifier) != 42 or precompile_verifier[:38].lower() != ZERO_ADDRESS[:38]:
        raise ValidationError(
            "Invalid precompile address. "
            "It should have the format 0x000000000000000000000000000000000000____"
        )
    return int(precompile_verifier[-4:] + Web3.to_checksum_address(contract_verifier)[2:], 16)


def derive_webauthn_verifier_address(
    x: int,
    y: int,
    precompile_verifier: str,
    contract_verifier: str,
    signer_factory: str,
    signer_singleton: str,
) -> str:
    """Compute the address of the per-key WebAuthn signer proxy created by the signer factory"""
    verifiers = verifier_selector(precompile_verifier, contract_verifier)
    code_hash = Web3.keccak(encode_packed(
        ['bytes', 'uint256', 'uint256', 'uint256', 'uint256'],
        [WEBAUTHN_SIGNER_PROXY_CREATION_CODE, int(signer_singleton, 16), x, y, verifiers]
    ))
    return create2_address(signer_factory, ZERO_SALT, code_hash)
