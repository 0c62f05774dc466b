"""End to end tests for SafeAccount"""

import asyncio

import pytest
from eth_abi import decode, encode

from addresses import create_proxy_address
from call_data import decode_call_data
from config import (
    CREATE_WEBAUTHN_SIGNER_SELECTOR,
    SAFE_4337_V0_2_0,
    SAFE_4337_V0_3_0,
    SENTINEL_OWNERS,
    SWAP_OWNER_SELECTOR,
)
from errors import ValidationError
from initializer import encode_factory_data
from multisend import decode_multisend, decode_multisend_call_data
from operation_builder import UserOperationOverrides
from signatures import sign_hash
from smart_account import SafeAccount, SafeAccountV0_2_0, SafeAccountV0_3_0
from user_operations import SignerSignaturePair, SubTransaction, UserOperationV6, UserOperationV7, WebAuthnPublicKey

KEY_A = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADDRESS_A = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
KEY_B = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
ADDRESS_B = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
ADDRESS_C = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
PASSKEY = WebAuthnPublicKey(x=0x3333, y=0x4444)
CHAIN_ID = 11155111

MINT = SubTransaction(
    to="0x7d74aAa6a72B327C04fBC032D4ABfe0586d3fB26",
    data="0x6a627842000000000000000000000000e32b71123efc7cff89eff38d8080c6300fba2fac",
)


class FakeNode:
    def __init__(self, nonce=0, owners=(), code=b''):
        self.nonce = nonce
        self.owners = list(owners)
        self.code = code
        self.calls = []

    async def fetch_nonce(self, entry_point, account):
        return self.nonce

    async def fetch_fee_estimate(self):
        return 2_000_000_000, 1_000_000_000

    async def get_code(self, address):
        return self.code

    async def call(self, to, data):
        self.calls.append((to, data))
        return encode(['address[]'], [self.owners])


class FakeBundler:
    def __init__(self):
        self.sent = []

    async def estimate_gas(self, user_operation, entry_point, state_override_set=None):
        return 45_000, 150_000, 80_000

    async def send_user_operation(self, user_operation, entry_point):
        self.sent.append((user_operation, entry_point))
        return "0x" + "12" * 32


class TestInitialization:
    def test_account_address_matches_factory_derivation(self):
        account = SafeAccountV0_3_0.initialize_new_account([ADDRESS_A])
        initializer = SafeAccountV0_3_0.create_initializer([ADDRESS_A])
        assert account.account_address == create_proxy_address(
            initializer, 0, SAFE_4337_V0_3_0.factory_address, SAFE_4337_V0_3_0.singleton_init_hash
        )
        assert account.account_address == SafeAccountV0_3_0.create_account_address([ADDRESS_A])
        assert account.factory_address == SAFE_4337_V0_3_0.factory_address
        assert account.factory_data == encode_factory_data(SAFE_4337_V0_3_0.singleton_address, initializer, 0)
        assert not account.is_init_webauthn

    def test_c2_nonce_and_deployment_change_address(self):
        baseline = SafeAccount.create_account_address([ADDRESS_A])
        assert SafeAccount.create_account_address([ADDRESS_A], c2_nonce=1) != baseline
        assert SafeAccountV0_2_0.create_account_address([ADDRESS_A]) != baseline

    def test_passkey_owner_recorded(self):
        account = SafeAccountV0_3_0.initialize_new_account([PASSKEY])
        assert account.webauthn_owner == PASSKEY
        assert account.is_init_webauthn

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError):
            SafeAccountV0_3_0.initialize_new_account([ADDRESS_A], threshold=2)

    def test_default_deployments(self):
        assert SafeAccount(ADDRESS_C).deployment == SAFE_4337_V0_3_0
        assert SafeAccountV0_2_0(ADDRESS_C).entry_point_address == SAFE_4337_V0_2_0.entry_point_address


class TestUserOperationFlow:
    def test_build_sign_send_v7(self):
        account = SafeAccountV0_3_0.initialize_new_account([ADDRESS_A, ADDRESS_B], threshold=2)
        node, bundler = FakeNode(nonce=0), FakeBundler()

        op = asyncio.run(account.create_user_operation([MINT], node, bundler))
        assert isinstance(op, UserOperationV7)
        assert op.factory == SAFE_4337_V0_3_0.factory_address
        assert decode_call_data(op.call_data)[0] == MINT
        assert op.call_gas_limit == 80_000
        assert op.max_fee_per_gas == 2_000_000_000

        op.signature = account.sign_user_operation(op, [KEY_A, KEY_B], CHAIN_ID)

        safe_operation_hash = account.get_user_operation_hash(op, CHAIN_ID)
        # ADDRESS_B sorts first
        assert op.signature == b'\x00' * 12 \
            + sign_hash(KEY_B, safe_operation_hash).signature \
            + sign_hash(KEY_A, safe_operation_hash).signature

        user_operation_hash = asyncio.run(account.send_user_operation(op, bundler))
        assert user_operation_hash == "0x" + "12" * 32
        assert bundler.sent == [(op, SAFE_4337_V0_3_0.entry_point_address)]

    def test_build_v6_for_deployed_account(self):
        account = SafeAccountV0_2_0(ADDRESS_C)
        op = asyncio.run(account.create_user_operation([MINT], FakeNode(nonce=3), FakeBundler()))
        assert isinstance(op, UserOperationV6)
        assert op.nonce == 3
        assert op.init_code == b''

    def test_signing_with_time_range(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        overrides = UserOperationOverrides(nonce=1)
        op = asyncio.run(account.create_user_operation([MINT], FakeNode(), FakeBundler(), overrides))
        signature = account.sign_user_operation(op, [KEY_A], CHAIN_ID, valid_after=100, valid_until=200)
        assert signature[:12] == (100).to_bytes(6, 'big') + (200).to_bytes(6, 'big')
        assert signature[12:] == sign_hash(KEY_A, account.get_user_operation_hash(op, CHAIN_ID, 100, 200)).signature

    def test_sign_requires_keys(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        with pytest.raises(ValidationError):
            account.sign_user_operation(UserOperationV7(sender=ADDRESS_C), [], CHAIN_ID)

    def test_format_passkey_signature(self):
        account = SafeAccountV0_3_0.initialize_new_account([PASSKEY])
        pair = SignerSignaturePair(signer=PASSKEY, signature=b'\x05' * 4)
        with pytest.raises(ValidationError):
            account.format_signatures([pair])
        signature = account.format_signatures([pair], is_init=True)
        assert signature[12:44] == int(SAFE_4337_V0_3_0.webauthn_shared_signer, 16).to_bytes(32, 'big')
        assert signature[-4:] == b'\x05' * 4

    def test_prepend_token_paymaster_approve(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        op = asyncio.run(account.create_user_operation(
            [MINT], FakeNode(), FakeBundler(), UserOperationOverrides(nonce=1)
        ))
        call_data = account.prepend_token_paymaster_approve(op.call_data, ADDRESS_A, ADDRESS_B, 1000)
        transaction, _ = decode_call_data(call_data)
        batch = decode_multisend(decode_multisend_call_data(transaction.data))
        assert batch[0] == MINT
        assert batch[1].to == ADDRESS_A


class TestOwnerManagement:
    def test_get_owners(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        node = FakeNode(owners=[ADDRESS_A, ADDRESS_B])
        assert asyncio.run(account.get_owners(node)) == [ADDRESS_A, ADDRESS_B]
        assert node.calls[0][0] == ADDRESS_C

    def test_add_owner(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        transaction = account.create_add_owner_with_threshold_transaction(ADDRESS_B, 2)
        assert transaction.to == ADDRESS_C
        assert decode(['address', 'uint256'], transaction.data[4:]) == (ADDRESS_B, 2)

    def test_swap_owner_looks_up_prev_owner(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        node = FakeNode(owners=[ADDRESS_A, ADDRESS_B])
        (transaction,) = asyncio.run(account.create_swap_owner_transactions(node, ADDRESS_C, ADDRESS_B))
        assert transaction.data[:4] == SWAP_OWNER_SELECTOR
        assert decode(['address', 'address', 'address'], transaction.data[4:]) == (ADDRESS_A, ADDRESS_B, ADDRESS_C)

    def test_swap_to_new_passkey_deploys_verifier(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        node = FakeNode(owners=[ADDRESS_A], code=b'')
        deploy, swap = asyncio.run(account.create_swap_owner_transactions(node, PASSKEY, ADDRESS_A))
        assert deploy.data[:4] == CREATE_WEBAUTHN_SIGNER_SELECTOR
        prev_owner, old_owner, new_owner = decode(['address', 'address', 'address'], swap.data[4:])
        assert prev_owner == SENTINEL_OWNERS
        assert old_owner == ADDRESS_A
        assert new_owner == account.webauthn_verifier_address(PASSKEY)

    def test_swap_to_deployed_passkey_skips_deploy(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        node = FakeNode(owners=[ADDRESS_A], code=b'\x60\x80')
        transactions = asyncio.run(account.create_swap_owner_transactions(node, PASSKEY, ADDRESS_A))
        assert len(transactions) == 1

    def test_remove_owner(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        node = FakeNode(owners=[ADDRESS_A, ADDRESS_B])
        transaction = asyncio.run(account.create_remove_owner_transaction(node, ADDRESS_B, 1))
        assert decode(['address', 'address', 'uint256'], transaction.data[4:]) == (ADDRESS_A, ADDRESS_B, 1)

    def test_remove_unknown_owner(self):
        account = SafeAccountV0_3_0(ADDRESS_C)
        with pytest.raises(ValidationError):
            asyncio.run(account.create_remove_owner_transaction(FakeNode(owners=[ADDRESS_A]), ADDRESS_B, 1))
