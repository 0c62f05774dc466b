"""
Safe setup() initializer and proxy factory calldata
"""

import logging
from typing import List, Sequence

from eth_abi import encode
from web3 import Web3

from addresses import verifier_selector
from config import (
    CONFIGURE_SHARED_SIGNER_SELECTOR,
    CREATE_PROXY_WITH_NONCE_SELECTOR,
    ENABLE_MODULES_SELECTOR,
    SETUP_SELECTOR,
    ZERO_ADDRESS,
)
from errors import ValidationError
from multisend import encode_multisend_call_data
from user_operations import Operation, Signer, SubTransaction, WebAuthnPublicKey

logger = logging.getLogger(__name__)

SETUP_INPUT_ABI = [
    'address[]',  # _owners
    'uint256',    # _threshold
    'address',    # to, target of the optional setup delegatecall
    'bytes',      # data, payload of the optional setup delegatecall
    'address',    # fallbackHandler
    'address',    # paymentToken
    'uint256',    # payment
    'address',    # paymentReceiver
]


def validate_owners(owners: Sequence[Signer], threshold: int) -> None:
    if len(owners) < 1:
        raise ValidationError("There should be at least one owner")
    if threshold < 1:
        raise ValidationError("threshold should be at least one")
    if threshold > len(owners):
        raise ValidationError("threshold can't be larger than number of owners")


def webauthn_owners(owners: Sequence[Signer]) -> List[WebAuthnPublicKey]:
    return [owner for owner in owners if isinstance(owner, WebAuthnPublicKey)]


def encode_initializer(
    owners: Sequence[Signer],
    threshold: int,
    module_address: str,
    module_setup_address: str,
    multisend_address: str,
    webauthn_shared_signer: str,
    precompile_verifier: str,
    contract_verifier: str,
) -> bytes:
    """
    Encode Safe.setup() for a new account with the 4337 module enabled.

    A WebAuthn owner can't be added directly since its signer contract doesn't exist
    yet, so the shared signer takes its place in the owner list and gets configured
    with the public key in the same setup delegatecall (batched through MultiSend).
    The first user operation later swaps the shared signer for the per-key signer.
    """
    validate_owners(owners, threshold)

    passkeys = webauthn_owners(owners)
    if len(passkeys) > 1:
        raise ValidationError("Only one WebAuthn owner can be set during initialization")

    enable_module_call_data = ENABLE_MODULES_SELECTOR + encode(
        ['address[]'], [[Web3.to_checksum_address(module_address)]]
    )

    if passkeys:
        passkey = passkeys[0]
        setup_transactions = [
            SubTransaction(
                to=module_setup_address,
                value=0,
                data=enable_module_call_data,
                operation=Operation.DELEGATECALL,
            ),
            SubTransaction(
                to=webauthn_shared_signer,
                value=0,
                data=CONFIGURE_SHARED_SIGNER_SELECTOR + encode(
                    ['uint256', 'uint256', 'uint176'],
                    [passkey.x, passkey.y, verifier_selector(precompile_verifier, contract_verifier)]
                ),
                operation=Operation.DELEGATECALL,
            ),
        ]
        owner_addresses = [
            webauthn_shared_signer if isinstance(owner, WebAuthnPublicKey) else owner
            for owner in owners
        ]
        setup_to = multisend_address
        setup_data = encode_multisend_call_data(setup_transactions)
    else:
        owner_addresses = list(owners)
        setup_to = module_setup_address
        setup_data = enable_module_call_data

    encoded_params = encode(SETUP_INPUT_ABI, [
        [Web3.to_checksum_address(owner) for owner in owner_addresses],
        threshold,
        Web3.to_checksum_address(setup_to),
        setup_data,
        Web3.to_checksum_address(module_address),  # the module is also the fallback handler
        ZERO_ADDRESS,
        0,
        ZERO_ADDRESS,
    ])
    return SETUP_SELECTOR + encoded_params


def encode_factory_data(singleton_address: str, initializer: bytes, c2_nonce: int) -> bytes:
    """Encode SafeProxyFactory.createProxyWithNonce(singleton, initializer, saltNonce)"""
    if c2_nonce < 0:
        raise ValidationError("c2Nonce can't be negative")
    return CREATE_PROXY_WITH_NONCE_SELECTOR + encode(
        ['address', 'bytes', 'uint256'],
        [Web3.to_checksum_address(singleton_address), initializer, c2_nonce]
    )
