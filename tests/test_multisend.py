"""Tests for MultiSend batch encoding"""

import pytest
from eth_abi import encode

from errors import BadDataError
from multisend import (
    TRANSACTION_HEADER_LENGTH,
    decode_multisend,
    decode_multisend_call_data,
    encode_multisend,
    encode_multisend_call_data,
)
from user_operations import Operation, SubTransaction

TRANSFER = SubTransaction(to="0x70997970C51812dc3A010C7d01b50e0d17dc79C8", value=10 ** 15)
MINT = SubTransaction(
    to="0x7d74aAa6a72B327C04fBC032D4ABfe0586d3fB26",
    value=0,
    data=bytes.fromhex("6a627842") + b'\x00' * 12 + bytes.fromhex("e32b71123efc7cff89eff38d8080c6300fba2fac"),
)
DELEGATE = SubTransaction(
    to="0x38869bf66a61cF6bDB996A6aE40D5853Fd43B526",
    data=b'\x01\x02\x03',
    operation=Operation.DELEGATECALL,
)


def test_single_transaction_layout():
    payload = encode_multisend([MINT])
    assert len(payload) == TRANSACTION_HEADER_LENGTH + len(MINT.data)
    assert payload[0] == 0
    assert payload[1:21] == bytes.fromhex(MINT.to[2:])
    assert int.from_bytes(payload[21:53], 'big') == 0
    assert int.from_bytes(payload[53:85], 'big') == len(MINT.data)
    assert payload[85:] == MINT.data


def test_delegatecall_operation_byte():
    assert encode_multisend([DELEGATE])[0] == 1


def test_round_trip():
    transactions = [TRANSFER, MINT, DELEGATE]
    assert decode_multisend(encode_multisend(transactions)) == transactions


def test_empty_data_transaction_round_trip():
    assert decode_multisend(encode_multisend([TRANSFER])) == [TRANSFER]


def test_call_data_wraps_payload_in_multisend_call():
    call_data = encode_multisend_call_data([TRANSFER, MINT])
    assert call_data[:4] == bytes.fromhex("8d80ff0a")
    assert call_data[4:] == encode(['bytes'], [encode_multisend([TRANSFER, MINT])])
    assert decode_multisend_call_data(call_data) == encode_multisend([TRANSFER, MINT])


def test_decode_call_data_accepts_hex():
    call_data = encode_multisend_call_data([MINT])
    assert decode_multisend_call_data("0x" + call_data.hex()) == encode_multisend([MINT])


def test_decode_call_data_wrong_selector():
    with pytest.raises(BadDataError) as exc_info:
        decode_multisend_call_data(b'\x12\x34\x56\x78' + encode(['bytes'], [b'']))
    assert exc_info.value.code == "BAD_DATA"
    assert exc_info.value.context["data"].startswith("0x12345678")


def test_truncated_header():
    payload = encode_multisend([MINT])
    with pytest.raises(BadDataError):
        decode_multisend(payload + payload[:40])


def test_data_overrun():
    payload = encode_multisend([MINT])
    with pytest.raises(BadDataError):
        decode_multisend(payload[:-1])


def test_unknown_operation():
    payload = bytearray(encode_multisend([TRANSFER]))
    payload[0] = 2
    with pytest.raises(BadDataError):
        decode_multisend(bytes(payload))


def test_empty_payload_decodes_to_nothing():
    assert decode_multisend(b'') == []
