"""
Owner management transactions executed by a Safe on itself
"""

from typing import List, Sequence

from eth_abi import decode, encode
from web3 import Web3

from addresses import verifier_selector
from config import (
    ADD_OWNER_WITH_THRESHOLD_SELECTOR,
    CONFIGURE_SHARED_SIGNER_SELECTOR,
    CREATE_WEBAUTHN_SIGNER_SELECTOR,
    GET_OWNERS_SELECTOR,
    REMOVE_OWNER_SELECTOR,
    SENTINEL_OWNERS,
    SWAP_OWNER_SELECTOR,
)
from errors import ValidationError
from user_operations import Operation, SubTransaction, WebAuthnPublicKey

GET_OWNERS_CALL_DATA = GET_OWNERS_SELECTOR


def create_add_owner_with_threshold_transaction(account_address: str, new_owner: str, threshold: int) -> SubTransaction:
    if threshold < 1:
        raise ValidationError("threshold should be at least one")
    return SubTransaction(
        to=account_address,
        value=0,
        data=ADD_OWNER_WITH_THRESHOLD_SELECTOR + encode(
            ['address', 'uint256'], [Web3.to_checksum_address(new_owner), threshold]
        ),
    )


def create_swap_owner_transaction(
    account_address: str,
    new_owner: str,
    old_owner: str,
    prev_owner: str = SENTINEL_OWNERS,
) -> SubTransaction:
    """swapOwner(prevOwner, oldOwner, newOwner), prevOwner points to oldOwner in the owner list"""
    return SubTransaction(
        to=account_address,
        value=0,
        data=SWAP_OWNER_SELECTOR + encode(
            ['address', 'address', 'address'],
            [
                Web3.to_checksum_address(prev_owner),
                Web3.to_checksum_address(old_owner),
                Web3.to_checksum_address(new_owner),
            ]
        ),
    )


def create_remove_owner_transaction(
    account_address: str,
    owner: str,
    threshold: int,
    prev_owner: str = SENTINEL_OWNERS,
) -> SubTransaction:
    """removeOwner(prevOwner, owner, threshold)"""
    if threshold < 1:
        raise ValidationError("threshold should be at least one")
    return SubTransaction(
        to=account_address,
        value=0,
        data=REMOVE_OWNER_SELECTOR + encode(
            ['address', 'address', 'uint256'],
            [Web3.to_checksum_address(prev_owner), Web3.to_checksum_address(owner), threshold]
        ),
    )


def create_deploy_webauthn_verifier_transaction(
    public_key: WebAuthnPublicKey,
    precompile_verifier: str,
    contract_verifier: str,
    signer_factory: str,
) -> SubTransaction:
    """createSigner(x, y, verifiers) on the signer factory, a no-op when the signer already exists"""
    return SubTransaction(
        to=signer_factory,
        value=0,
        data=CREATE_WEBAUTHN_SIGNER_SELECTOR + encode(
            ['uint256', 'uint256', 'uint176'],
            [public_key.x, public_key.y, verifier_selector(precompile_verifier, contract_verifier)]
        ),
    )


def create_clear_shared_signer_transaction(shared_signer: str) -> SubTransaction:
    """Reset the shared signer configuration stored in the account (configure(0, 0, 0))"""
    return SubTransaction(
        to=shared_signer,
        value=0,
        data=CONFIGURE_SHARED_SIGNER_SELECTOR + encode(['uint256', 'uint256', 'uint176'], [0, 0, 0]),
        operation=Operation.DELEGATECALL,
    )


def decode_owners(result: bytes) -> List[str]:
    (owners,) = decode(['address[]'], bytes(result))
    return [Web3.to_checksum_address(owner) for owner in owners]


def find_prev_owner(owners: Sequence[str], owner: str) -> str:
    """The owner pointing to `owner` in the Safe owner linked list"""
    lowered = [current.lower() for current in owners]
    if owner.lower() not in lowered:
        raise ValidationError(f"{owner} is not a current owner.")
    index = lowered.index(owner.lower())
    if index == 0:
        return SENTINEL_OWNERS
    return owners[index - 1]
