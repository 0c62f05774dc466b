"""
Safe signature assembly for user operations.

The Safe validates owner signatures by walking its sorted owner linked list, so
signatures are always emitted in ascending order of the signer address. Each
signer gets a 65 byte static slot: plain ECDSA signatures are written there as
is, contract signatures (ERC-1271 owners such as WebAuthn signers) put
(owner, offset, 0) in the slot and their actual signature in a dynamic tail
after all the static slots.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_account import Account
from hexbytes import HexBytes

from addresses import derive_webauthn_verifier_address
from config import MAX_VALIDITY_TIMESTAMP, SafeDeployment
from errors import ValidationError
from operation_hash import validate_time_range
from user_operations import SignerSignaturePair, Signer, WebAuthnPublicKey

logger = logging.getLogger(__name__)

STATIC_SIGNATURE_LENGTH = 65

# Any well formed 65 byte ECDSA signature works for gas estimation
EOA_DUMMY_SIGNER_SIGNATURE_PAIR = SignerSignaturePair(
    signer="0xfD90FAd33ee8b58f32c00aceEad1358e4AFC23f9",
    signature=(
        "0x47003599ffa7e9198f321afa774e34a12a959844efd6363b88896e9c24ed33cf"
        "4e1be876ef123a3c4467e7d451511434039539699f2baa2f44955fa3d1c1c6d81c"
    ),
)


@dataclass(frozen=True)
class WebAuthnContext:
    """Which address a WebAuthn signer resolves to while signing"""
    shared_signer: str
    precompile_verifier: str
    contract_verifier: str
    signer_factory: str
    signer_singleton: str
    # True while the shared signer still stands in for the passkey (first user operation)
    is_init: Optional[bool] = None

    @classmethod
    def from_deployment(cls, deployment: SafeDeployment, is_init: Optional[bool] = None) -> 'WebAuthnContext':
        return cls(
            is_init=is_init,
            shared_signer=deployment.webauthn_shared_signer,
            precompile_verifier=deployment.webauthn_precompile_verifier,
            contract_verifier=deployment.webauthn_contract_verifier,
            signer_factory=deployment.webauthn_signer_factory,
            signer_singleton=deployment.webauthn_signer_singleton,
        )

    def verifier_address(self, public_key: WebAuthnPublicKey) -> str:
        return derive_webauthn_verifier_address(
            public_key.x,
            public_key.y,
            self.precompile_verifier,
            self.contract_verifier,
            self.signer_factory,
            self.signer_singleton,
        )


def signer_address(signer: Signer, context: Optional[WebAuthnContext] = None) -> str:
    """Lowercase on-chain owner address of a signer"""
    if not isinstance(signer, WebAuthnPublicKey):
        return signer.lower()

    if context is None:
        raise ValidationError("WebAuthn signers need a WebAuthnContext naming the signer deployment")
    if context.is_init is None:
        raise ValidationError("Must define isInit parameter when using WebAuthn")
    if context.is_init:
        return context.shared_signer.lower()
    return context.verifier_address(signer).lower()


def sort_signer_signature_pairs(
    pairs: Sequence[SignerSignaturePair],
    context: Optional[WebAuthnContext] = None,
) -> List[Tuple[str, SignerSignaturePair]]:
    """Resolve owner addresses and sort ascending, returns (address, pair) tuples"""
    resolved = [(signer_address(pair.signer, context), pair) for pair in pairs]
    return sorted(resolved, key=lambda item: item[0])


def build_signatures(
    pairs: Sequence[SignerSignaturePair],
    context: Optional[WebAuthnContext] = None,
) -> bytes:
    """Concatenate owner signatures in the layout Safe.checkSignatures expects, without the time range"""
    sorted_pairs = sort_signer_signature_pairs(pairs, context)

    start = STATIC_SIGNATURE_LENGTH * len(sorted_pairs)
    offset = 0
    static_parts = []
    dynamic_parts = []
    for owner, pair in sorted_pairs:
        is_contract_signature = pair.is_contract_signature or isinstance(pair.signer, WebAuthnPublicKey)
        if is_contract_signature:
            static_parts.append(encode_packed(
                ['uint256', 'uint256', 'uint8'],
                [int(owner, 16), start + offset, 0]
            ))
            dynamic_parts.append(encode_packed(
                ['uint256', 'bytes'],
                [len(pair.signature), pair.signature]
            ))
            offset += 32 + len(pair.signature)
        else:
            static_parts.append(pair.signature)

    return b''.join(static_parts) + b''.join(dynamic_parts)


def format_signature_with_time_range(signature: bytes, valid_after: int = 0, valid_until: int = 0) -> bytes:
    """Prefix Safe signatures with validAfter and validUntil as uint48 each"""
    validate_time_range(valid_after, valid_until)
    return encode_packed(['uint48', 'uint48', 'bytes'], [valid_after, valid_until, bytes(signature)])


def assemble_signature(
    pairs: Sequence[SignerSignaturePair],
    valid_after: int = 0,
    valid_until: int = 0,
    context: Optional[WebAuthnContext] = None,
) -> bytes:
    """Full user operation signature: time range followed by the sorted owner signatures"""
    return format_signature_with_time_range(build_signatures(pairs, context), valid_after, valid_until)


def format_eip712_signatures(
    signer_addresses: Sequence[str],
    signatures: Sequence[bytes],
    valid_after: int = 0,
    valid_until: int = 0,
) -> bytes:
    """Assemble plain ECDSA signatures given as parallel lists of signers and signatures"""
    if len(signer_addresses) != len(signatures):
        raise ValidationError("signersAddresses and signatures arrays should be the same length")

    pairs = [
        SignerSignaturePair(signer=signer, signature=signature)
        for signer, signature in zip(signer_addresses, signatures)
    ]
    return assemble_signature(pairs, valid_after, valid_until)


def dummy_signature(pairs: Sequence[SignerSignaturePair], context: Optional[WebAuthnContext] = None) -> bytes:
    """Signature with the widest time range, used while estimating gas"""
    return assemble_signature(pairs, MAX_VALIDITY_TIMESTAMP, MAX_VALIDITY_TIMESTAMP, context)


def sign_hash(private_key: str, message_hash: bytes) -> SignerSignaturePair:
    """Sign a raw 32 byte hash with an owner key, r ++ s ++ v"""
    account = Account.from_key(private_key)
    signed = account.unsafe_sign_hash(HexBytes(message_hash))
    return SignerSignaturePair(signer=account.address, signature=bytes(signed.signature))


def create_webauthn_signature(
    authenticator_data: bytes,
    client_data_fields: bytes,
    r: int,
    s: int,
) -> bytes:
    """Encode a passkey assertion the way the WebAuthn signer contracts decode it"""
    return encode(
        ['bytes', 'bytes', 'uint256[2]'],
        [bytes(authenticator_data), bytes(client_data_fields), [r, s]]
    )


def create_dummy_webauthn_signer_signature_pair(public_key: WebAuthnPublicKey) -> SignerSignaturePair:
    """A passkey signature of realistic size for gas estimation"""
    authenticator_data = bytes.fromhex("49960de5880e8c687434170f6476605b8fe4aeb9a28632c7995cf3ba831d9763") \
        + bytes.fromhex("0500000000")
    client_data_fields = b'"origin":"https://safe.global","crossOrigin":false'
    signature = create_webauthn_signature(
        authenticator_data,
        client_data_fields,
        int("ec" * 32, 16),
        int("d5" * 32, 16),
    )
    return SignerSignaturePair(signer=public_key, signature=signature)

