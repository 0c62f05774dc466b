"""
Safe smart account orchestration: address derivation, user operation building, signing and submission
"""

import logging
from typing import List, Optional, Sequence

from web3 import Web3

from addresses import create_proxy_address
from bundler import BundlerClient, NodeClient
from call_data import prepend_approve
from config import SAFE_4337_V0_2_0, SAFE_4337_V0_3_0, SafeDeployment
from errors import ValidationError
from initializer import encode_factory_data, encode_initializer, validate_owners, webauthn_owners
from operation_builder import UserOperationBuilder, UserOperationOverrides
from operation_hash import get_safe_operation_hash
from owners import (
    GET_OWNERS_CALL_DATA,
    create_add_owner_with_threshold_transaction,
    create_deploy_webauthn_verifier_transaction,
    create_remove_owner_transaction,
    create_swap_owner_transaction,
    decode_owners,
    find_prev_owner,
)
from signatures import WebAuthnContext, assemble_signature, sign_hash
from user_operations import (
    Signer,
    SignerSignaturePair,
    SubTransaction,
    UserOperation,
    WebAuthnPublicKey,
)

logger = logging.getLogger(__name__)


class SafeAccount:
    """A Safe account driven through the Safe 4337 module"""

    DEFAULT_DEPLOYMENT: SafeDeployment = SAFE_4337_V0_3_0

    def __init__(self, account_address: str, deployment: Optional[SafeDeployment] = None):
        self.account_address = Web3.to_checksum_address(account_address)
        self.deployment = deployment or self.DEFAULT_DEPLOYMENT
        self.factory_address: Optional[str] = None
        self.factory_data: Optional[bytes] = None
        self.webauthn_owner: Optional[WebAuthnPublicKey] = None

    @property
    def entry_point_address(self) -> str:
        return self.deployment.entry_point_address

    @property
    def is_init_webauthn(self) -> bool:
        return self.webauthn_owner is not None

    @classmethod
    def create_initializer(
        cls,
        owners: Sequence[Signer],
        threshold: int = 1,
        deployment: Optional[SafeDeployment] = None,
    ) -> bytes:
        deployment = deployment or cls.DEFAULT_DEPLOYMENT
        return encode_initializer(
            owners,
            threshold,
            deployment.module_address,
            deployment.module_setup_address,
            deployment.multisend_address,
            deployment.webauthn_shared_signer,
            deployment.webauthn_precompile_verifier,
            deployment.webauthn_contract_verifier,
        )

    @classmethod
    def create_account_address(
        cls,
        owners: Sequence[Signer],
        threshold: int = 1,
        c2_nonce: int = 0,
        deployment: Optional[SafeDeployment] = None,
    ) -> str:
        """Counterfactual address of the account the owners would deploy"""
        deployment = deployment or cls.DEFAULT_DEPLOYMENT
        initializer = cls.create_initializer(owners, threshold, deployment)
        return create_proxy_address(
            initializer, c2_nonce, deployment.factory_address, deployment.singleton_init_hash
        )

    @classmethod
    def initialize_new_account(
        cls,
        owners: Sequence[Signer],
        threshold: int = 1,
        c2_nonce: int = 0,
        deployment: Optional[SafeDeployment] = None,
    ) -> 'SafeAccount':
        """Account object for a not yet deployed Safe, its first user operation deploys it"""
        validate_owners(owners, threshold)
        deployment = deployment or cls.DEFAULT_DEPLOYMENT
        initializer = cls.create_initializer(owners, threshold, deployment)
        account_address = create_proxy_address(
            initializer, c2_nonce, deployment.factory_address, deployment.singleton_init_hash
        )

        account = cls(account_address, deployment)
        account.factory_address = deployment.factory_address
        account.factory_data = encode_factory_data(deployment.singleton_address, initializer, c2_nonce)
        passkeys = webauthn_owners(owners)
        if passkeys:
            account.webauthn_owner = passkeys[0]

        logger.info(f"Initialized Safe account {account_address} with {len(owners)} owners, threshold {threshold}")
        return account

    async def create_user_operation(
        self,
        transactions: Sequence[SubTransaction],
        node: Optional[NodeClient] = None,
        bundler: Optional[BundlerClient] = None,
        overrides: Optional[UserOperationOverrides] = None,
    ) -> UserOperation:
        """Build a user operation ready to be signed, fetching whatever isn't overridden"""
        builder = UserOperationBuilder(
            self.account_address,
            self.deployment,
            self.factory_address,
            self.factory_data,
            self.webauthn_owner,
        )
        result = await builder.build(
            transactions,
            merged_blob_version=self.deployment.merged_blob_version,
            nonce_provider=node,
            fee_provider=node,
            gas_estimator=bundler,
            overrides=overrides,
        )
        return result.user_operation

    def get_user_operation_hash(
        self,
        user_operation: UserOperation,
        chain_id: int,
        valid_after: int = 0,
        valid_until: int = 0,
    ) -> bytes:
        """SafeOp hash the owners have to sign"""
        return get_safe_operation_hash(
            user_operation,
            chain_id,
            valid_after,
            valid_until,
            self.deployment.entry_point_address,
            self.deployment.module_address,
        )

    def sign_user_operation(
        self,
        user_operation: UserOperation,
        private_keys: Sequence[str],
        chain_id: int,
        valid_after: int = 0,
        valid_until: int = 0,
    ) -> bytes:
        """Sign with owner private keys and return the packed user operation signature"""
        if len(private_keys) < 1:
            raise ValidationError("There should be at least one privateKey")

        safe_operation_hash = self.get_user_operation_hash(user_operation, chain_id, valid_after, valid_until)
        pairs = [sign_hash(private_key, safe_operation_hash) for private_key in private_keys]
        return assemble_signature(pairs, valid_after, valid_until)

    def format_signatures(
        self,
        pairs: Sequence[SignerSignaturePair],
        valid_after: int = 0,
        valid_until: int = 0,
        is_init: Optional[bool] = None,
    ) -> bytes:
        """Pack signatures collected elsewhere, e.g. passkey assertions, into a user operation signature"""
        context = WebAuthnContext.from_deployment(self.deployment, is_init)
        return assemble_signature(pairs, valid_after, valid_until, context)

    async def send_user_operation(self, user_operation: UserOperation, bundler: BundlerClient) -> str:
        return await bundler.send_user_operation(user_operation, self.entry_point_address)

    def prepend_token_paymaster_approve(
        self,
        call_data: bytes,
        token_address: str,
        paymaster_address: str,
        amount: int,
    ) -> bytes:
        return prepend_approve(call_data, token_address, paymaster_address, amount, self.deployment.multisend_address)

    def webauthn_verifier_address(self, public_key: WebAuthnPublicKey) -> str:
        return WebAuthnContext.from_deployment(self.deployment).verifier_address(public_key)

    def _owner_address(self, owner: Signer) -> str:
        if isinstance(owner, WebAuthnPublicKey):
            return self.webauthn_verifier_address(owner)
        return Web3.to_checksum_address(owner)

    async def get_owners(self, node: NodeClient) -> List[str]:
        """Fetch the current owners from the account"""
        result = await node.call(self.account_address, GET_OWNERS_CALL_DATA)
        return decode_owners(result)

    def create_add_owner_with_threshold_transaction(self, new_owner: Signer, threshold: int) -> SubTransaction:
        return create_add_owner_with_threshold_transaction(
            self.account_address, self._owner_address(new_owner), threshold
        )

    async def create_swap_owner_transactions(
        self,
        node: NodeClient,
        new_owner: Signer,
        old_owner: Signer,
        prev_owner: Optional[str] = None,
    ) -> List[SubTransaction]:
        """
        Swap old_owner for new_owner. A passkey new owner gets its signer contract
        deployed first if it has no code yet. prev_owner is looked up from the
        current owner list unless given.
        """
        transactions = []
        new_owner_address = self._owner_address(new_owner)
        if isinstance(new_owner, WebAuthnPublicKey):
            code = await node.get_code(new_owner_address)
            if len(code) == 0:
                transactions.append(create_deploy_webauthn_verifier_transaction(
                    new_owner,
                    self.deployment.webauthn_precompile_verifier,
                    self.deployment.webauthn_contract_verifier,
                    self.deployment.webauthn_signer_factory,
                ))

        old_owner_address = self._owner_address(old_owner)
        if prev_owner is None:
            prev_owner = find_prev_owner(await self.get_owners(node), old_owner_address)

        transactions.append(create_swap_owner_transaction(
            self.account_address, new_owner_address, old_owner_address, prev_owner
        ))
        return transactions

    async def create_remove_owner_transaction(
        self,
        node: NodeClient,
        owner: Signer,
        threshold: int,
        prev_owner: Optional[str] = None,
    ) -> SubTransaction:
        owner_address = self._owner_address(owner)
        if prev_owner is None:
            prev_owner = find_prev_owner(await self.get_owners(node), owner_address)
        return create_remove_owner_transaction(self.account_address, owner_address, threshold, prev_owner)


class SafeAccountV0_2_0(SafeAccount):
    """Safe 4337 module v0.2.0, EntryPoint v0.6"""

    DEFAULT_DEPLOYMENT = SAFE_4337_V0_2_0


class SafeAccountV0_3_0(SafeAccount):
    """Safe 4337 module v0.3.0, EntryPoint v0.7"""

    DEFAULT_DEPLOYMENT = SAFE_4337_V0_3_0
