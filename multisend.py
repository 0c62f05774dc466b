"""
MultiSend batch encoding: operation(1) ++ to(20) ++ value(32) ++ dataLength(32) ++ data per transaction
"""

import logging
from typing import List, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_abi.packed import encode_packed
from web3 import Web3

from config import MULTISEND_SELECTOR
from errors import BadDataError
from user_operations import Operation, SubTransaction, to_bytes

logger = logging.getLogger(__name__)

TRANSACTION_HEADER_LENGTH = 1 + 20 + 32 + 32


def encode_multisend(transactions: Sequence[SubTransaction]) -> bytes:
    """Pack transactions into the payload taken by multiSend(bytes)"""
    return b''.join(
        encode_packed(
            ['uint8', 'address', 'uint256', 'uint256', 'bytes'],
            [int(tx.operation), tx.to, tx.value, len(tx.data), tx.data]
        )
        for tx in transactions
    )


def encode_multisend_call_data(transactions: Sequence[SubTransaction]) -> bytes:
    """Full multiSend(bytes) calldata for a list of transactions"""
    return MULTISEND_SELECTOR + encode(['bytes'], [encode_multisend(transactions)])


def decode_multisend_call_data(call_data: bytes) -> bytes:
    """Extract the packed transactions payload from multiSend(bytes) calldata"""
    call_data = to_bytes(call_data)
    if call_data[:4] != MULTISEND_SELECTOR:
        raise BadDataError(
            "Invalid multisend calldata, should start with 0x" + MULTISEND_SELECTOR.hex(),
            call_data
        )
    try:
        (payload,) = decode(['bytes'], call_data[4:])
    except DecodingError as e:
        raise BadDataError(f"Malformed multisend calldata: {e}", call_data) from e
    return payload


def decode_multisend(payload: bytes) -> List[SubTransaction]:
    """Walk a packed multisend payload back into its transactions"""
    payload = to_bytes(payload)
    transactions = []
    offset = 0
    while offset < len(payload):
        header = payload[offset:offset + TRANSACTION_HEADER_LENGTH]
        if len(header) < TRANSACTION_HEADER_LENGTH:
            raise BadDataError(f"Truncated multisend transaction header at offset {offset}", payload)

        operation = header[0]
        if operation not in (Operation.CALL, Operation.DELEGATECALL):
            raise BadDataError(f"Unknown multisend operation {operation} at offset {offset}", payload)

        to = Web3.to_checksum_address("0x" + header[1:21].hex())
        value = int.from_bytes(header[21:53], 'big')
        data_length = int.from_bytes(header[53:85], 'big')

        data_start = offset + TRANSACTION_HEADER_LENGTH
        data_end = data_start + data_length
        if data_end > len(payload):
            raise BadDataError(
                f"Multisend transaction data at offset {offset} overruns the payload", payload
            )

        transactions.append(SubTransaction(
            to=to,
            value=value,
            data=payload[data_start:data_end],
            operation=Operation(operation),
        ))
        offset = data_end

    logger.debug(f"Decoded {len(transactions)} multisend transactions")
    return transactions
