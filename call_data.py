"""
Safe4337Module executor calldata encoding and decoding
"""

import logging
from typing import List, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from config import (
    APPROVE_SELECTOR,
    EXECUTE_USER_OP_WITH_ERROR_STRING_SELECTOR,
    EXECUTOR_SELECTORS,
    MULTISEND_SELECTOR,
)
from errors import BadDataError, ValidationError
from multisend import decode_multisend, decode_multisend_call_data, encode_multisend_call_data
from user_operations import Operation, SubTransaction, to_bytes

logger = logging.getLogger(__name__)

EXECUTOR_INPUT_ABI = ['address', 'uint256', 'bytes', 'uint8']


def encode_single(
    transaction: SubTransaction,
    executor_selector: bytes = EXECUTE_USER_OP_WITH_ERROR_STRING_SELECTOR,
) -> bytes:
    """Encode executeUserOp*(to, value, data, operation) for one transaction"""
    encoded_params = encode(
        EXECUTOR_INPUT_ABI,
        [transaction.to, transaction.value, transaction.data, int(transaction.operation)]
    )
    return bytes(executor_selector) + encoded_params


def encode_batch(
    transactions: Sequence[SubTransaction],
    executor_selector: bytes,
    multisend_address: str,
) -> bytes:
    """Encode several transactions as one delegatecall into the MultiSend contract"""
    if len(transactions) < 1:
        raise ValidationError("There should be at least one transaction")

    multisend_transaction = SubTransaction(
        to=multisend_address,
        value=0,
        data=encode_multisend_call_data(transactions),
        operation=Operation.DELEGATECALL,
    )
    return encode_single(multisend_transaction, executor_selector)


def decode_call_data(call_data: bytes) -> Tuple[SubTransaction, bytes]:
    """Decode executor calldata back into its transaction and executor selector"""
    call_data = to_bytes(call_data)
    executor_selector = call_data[:4]
    if executor_selector not in EXECUTOR_SELECTORS:
        raise BadDataError(
            "Invalid calldata, should start with "
            + " or ".join("0x" + selector.hex() for selector in EXECUTOR_SELECTORS),
            call_data
        )

    try:
        to, value, data, operation = decode(EXECUTOR_INPUT_ABI, call_data[4:])
    except DecodingError as e:
        raise BadDataError(f"Malformed executor calldata: {e}", call_data) from e
    if operation not in (Operation.CALL, Operation.DELEGATECALL):
        raise BadDataError(f"Unknown operation {operation} in executor calldata", call_data)

    transaction = SubTransaction(to=to, value=value, data=data, operation=Operation(operation))
    return transaction, executor_selector


def prepend_approve(
    call_data: bytes,
    token_address: str,
    spender: str,
    amount: int,
    multisend_address: str,
) -> bytes:
    """
    Add an ERC-20 approve(spender, amount) on token_address to existing executor calldata,
    typically so a token paymaster can charge the account.

    The approve call runs after the existing transactions. The result is always a
    multisend batch, single-transaction calldata is upgraded to a two-transaction batch.
    """
    if amount < 0:
        raise ValidationError("approve amount can't be negative")

    transaction, executor_selector = decode_call_data(call_data)

    approve_transaction = SubTransaction(
        to=token_address,
        value=0,
        data=APPROVE_SELECTOR + encode(['address', 'uint256'], [Web3.to_checksum_address(spender), amount]),
        operation=Operation.CALL,
    )

    transactions: List[SubTransaction]
    if transaction.data[:4] == MULTISEND_SELECTOR:
        transactions = decode_multisend(decode_multisend_call_data(transaction.data))
    else:
        transactions = [transaction]
    transactions.append(approve_transaction)

    logger.debug(f"Added approve for {spender} on {token_address}, batch of {len(transactions)}")
    return encode_batch(transactions, executor_selector, multisend_address)
