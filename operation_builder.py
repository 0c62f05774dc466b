"""
Draft user operation assembly: nonce, calldata, init code, fees and gas limits
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Sequence, Tuple, Union

from call_data import encode_batch, encode_single
from config import SENTINEL_OWNERS, VERIFICATION_GAS_PER_SIGNER, SafeDeployment
from errors import DependencyError, ValidationError
from owners import (
    create_clear_shared_signer_transaction,
    create_deploy_webauthn_verifier_transaction,
    create_swap_owner_transaction,
)
from signatures import (
    EOA_DUMMY_SIGNER_SIGNATURE_PAIR,
    WebAuthnContext,
    create_dummy_webauthn_signer_signature_pair,
    dummy_signature,
)
from user_operations import (
    SignerSignaturePair,
    SubTransaction,
    UserOperation,
    UserOperationV6,
    UserOperationV7,
    WebAuthnPublicKey,
    to_bytes,
)

logger = logging.getLogger(__name__)


class NonceProvider(Protocol):
    async def fetch_nonce(self, entry_point: str, account: str) -> int:
        ...


class FeeProvider(Protocol):
    async def fetch_fee_estimate(self) -> Tuple[int, int]:
        """Return (maxFeePerGas, maxPriorityFeePerGas)"""
        ...


class GasEstimator(Protocol):
    async def estimate_gas(
        self,
        user_operation: UserOperation,
        entry_point: str,
        state_override_set: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, int, int]:
        """Return (preVerificationGas, verificationGasLimit, callGasLimit)"""
        ...


@dataclass
class UserOperationOverrides:
    """Per-operation values that replace what the builder would fetch or compute"""
    nonce: Optional[int] = None
    call_data: Optional[Union[bytes, str]] = None

    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    max_fee_per_gas_percentage_multiplier: int = 0
    max_priority_fee_per_gas_percentage_multiplier: int = 0

    pre_verification_gas: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    call_gas_limit: Optional[int] = None
    pre_verification_gas_percentage_multiplier: int = 0
    verification_gas_limit_percentage_multiplier: int = 0
    call_gas_limit_percentage_multiplier: int = 0

    dummy_signer_signature_pairs: Optional[List[SignerSignaturePair]] = None
    state_override_set: Optional[Dict[str, Any]] = None

    # Also reset the shared signer storage when swapping in the passkey signer
    clear_shared_signer_on_bootstrap: bool = False
    # Defaults to nonce == 0
    webauthn_is_init: Optional[bool] = None


class BuildResult(NamedTuple):
    user_operation: UserOperation
    factory_address: Optional[str]
    factory_data: Optional[bytes]


NON_NEGATIVE_OVERRIDES = (
    'nonce',
    'max_fee_per_gas',
    'max_priority_fee_per_gas',
    'pre_verification_gas',
    'verification_gas_limit',
    'call_gas_limit',
)


def validate_overrides(overrides: UserOperationOverrides) -> None:
    for name in NON_NEGATIVE_OVERRIDES:
        value = getattr(overrides, name)
        if value is not None and value < 0:
            raise ValidationError(f"{name} override can't be negative")
    if overrides.dummy_signer_signature_pairs is not None and len(overrides.dummy_signer_signature_pairs) < 1:
        raise ValidationError("Number of dummy signer signature pairs can't be less than 1")


def apply_multiplier(value: int, percentage: int) -> int:
    return value * (100 + percentage) // 100


class UserOperationBuilder:
    """Builds unsigned user operations for one Safe account"""

    def __init__(
        self,
        account_address: str,
        deployment: SafeDeployment,
        factory_address: Optional[str] = None,
        factory_data: Optional[bytes] = None,
        webauthn_owner: Optional[WebAuthnPublicKey] = None,
    ):
        self.account_address = account_address
        self.deployment = deployment
        self.factory_address = factory_address
        self.factory_data = factory_data
        # Set when the account was initialized with a passkey behind the shared signer
        self.webauthn_owner = webauthn_owner

    async def build(
        self,
        transactions: Sequence[SubTransaction],
        merged_blob_version: Optional[bool] = None,
        nonce_provider: Optional[NonceProvider] = None,
        fee_provider: Optional[FeeProvider] = None,
        gas_estimator: Optional[GasEstimator] = None,
        overrides: Optional[UserOperationOverrides] = None,
    ) -> BuildResult:
        if len(transactions) < 1:
            raise ValidationError("There should be at least one transaction")
        overrides = overrides or UserOperationOverrides()
        validate_overrides(overrides)
        if merged_blob_version is None:
            merged_blob_version = self.deployment.merged_blob_version

        nonce = await self._resolve_nonce(nonce_provider, overrides)

        factory_address = self.factory_address
        factory_data = self.factory_data
        if nonce > 0:
            factory_address = None
            factory_data = None
        elif self.webauthn_owner is not None:
            transactions = self._bootstrap_transactions(overrides) + list(transactions)

        if overrides.call_data is not None:
            call_data = to_bytes(overrides.call_data)
        elif len(transactions) == 1:
            call_data = encode_single(transactions[0], self.deployment.executor_selector)
        else:
            call_data = encode_batch(transactions, self.deployment.executor_selector, self.deployment.multisend_address)

        max_fee_per_gas, max_priority_fee_per_gas = await self._resolve_fees(fee_provider, overrides)

        if merged_blob_version:
            init_code = b''
            if factory_address is not None:
                init_code = bytes.fromhex(factory_address[2:]) + to_bytes(factory_data)
            user_operation = UserOperationV6(init_code=init_code, paymaster_and_data=b'')
        else:
            user_operation = UserOperationV7(factory=factory_address, factory_data=factory_data)
        user_operation.sender = self.account_address
        user_operation.nonce = nonce
        user_operation.call_data = call_data
        user_operation.max_fee_per_gas = max_fee_per_gas
        user_operation.max_priority_fee_per_gas = max_priority_fee_per_gas

        pre_verification_gas = verification_gas_limit = call_gas_limit = 0
        if (
            overrides.pre_verification_gas is None
            or overrides.verification_gas_limit is None
            or overrides.call_gas_limit is None
        ):
            pre_verification_gas, verification_gas_limit, call_gas_limit = await self._estimate_gas(
                user_operation, gas_estimator, overrides
            )

        user_operation.pre_verification_gas = self._pick(
            overrides.pre_verification_gas, pre_verification_gas,
            overrides.pre_verification_gas_percentage_multiplier
        )
        user_operation.verification_gas_limit = self._pick(
            overrides.verification_gas_limit, verification_gas_limit,
            overrides.verification_gas_limit_percentage_multiplier
        )
        user_operation.call_gas_limit = self._pick(
            overrides.call_gas_limit, call_gas_limit,
            overrides.call_gas_limit_percentage_multiplier
        )

        logger.info(
            f"Built user operation for {self.account_address}: nonce={nonce}, "
            f"callGasLimit={user_operation.call_gas_limit}, "
            f"verificationGasLimit={user_operation.verification_gas_limit}, "
            f"preVerificationGas={user_operation.pre_verification_gas}"
        )
        return BuildResult(user_operation, factory_address, factory_data)

    @staticmethod
    def _pick(override: Optional[int], value: int, percentage: int) -> int:
        if override is not None:
            return override
        return apply_multiplier(value, percentage)

    async def _resolve_nonce(self, nonce_provider: Optional[NonceProvider], overrides: UserOperationOverrides) -> int:
        if overrides.nonce is not None:
            return overrides.nonce
        if nonce_provider is None:
            raise DependencyError("a nonce provider is required if nonce is not overridden")
        nonce = await nonce_provider.fetch_nonce(self.deployment.entry_point_address, self.account_address)
        if nonce < 0:
            raise ValidationError("nonce can't be negative")
        logger.info(f"Current nonce: {nonce}")
        return nonce

    async def _resolve_fees(
        self,
        fee_provider: Optional[FeeProvider],
        overrides: UserOperationOverrides,
    ) -> Tuple[int, int]:
        max_fee_per_gas = max_priority_fee_per_gas = 0
        if overrides.max_fee_per_gas is None or overrides.max_priority_fee_per_gas is None:
            if fee_provider is None:
                raise DependencyError(
                    "a fee provider is required if maxFeePerGas and maxPriorityFeePerGas are not overridden"
                )
            max_fee_per_gas, max_priority_fee_per_gas = await fee_provider.fetch_fee_estimate()
            # a zero fee reads as unset downstream
            max_fee_per_gas = max_fee_per_gas or 1
            max_priority_fee_per_gas = max_priority_fee_per_gas or 1
            logger.info(f"Fetched fees: maxFeePerGas={max_fee_per_gas}, maxPriorityFeePerGas={max_priority_fee_per_gas}")

        return (
            self._pick(overrides.max_fee_per_gas, max_fee_per_gas,
                       overrides.max_fee_per_gas_percentage_multiplier),
            self._pick(overrides.max_priority_fee_per_gas, max_priority_fee_per_gas,
                       overrides.max_priority_fee_per_gas_percentage_multiplier),
        )

    def _webauthn_context(self, is_init: bool) -> WebAuthnContext:
        return WebAuthnContext.from_deployment(self.deployment, is_init)

    def _bootstrap_transactions(self, overrides: UserOperationOverrides) -> List[SubTransaction]:
        """Deploy the passkey signer and swap it in for the shared signer placeholder"""
        deployment = self.deployment
        verifier_address = self._webauthn_context(False).verifier_address(self.webauthn_owner)

        transactions = [
            create_deploy_webauthn_verifier_transaction(
                self.webauthn_owner,
                deployment.webauthn_precompile_verifier,
                deployment.webauthn_contract_verifier,
                deployment.webauthn_signer_factory,
            ),
            create_swap_owner_transaction(
                self.account_address,
                new_owner=verifier_address,
                old_owner=deployment.webauthn_shared_signer,
                prev_owner=SENTINEL_OWNERS,
            ),
        ]
        if overrides.clear_shared_signer_on_bootstrap:
            transactions.append(create_clear_shared_signer_transaction(deployment.webauthn_shared_signer))

        logger.info(f"Prepending WebAuthn signer bootstrap, verifier {verifier_address}")
        return transactions

    async def _estimate_gas(
        self,
        user_operation: UserOperation,
        gas_estimator: Optional[GasEstimator],
        overrides: UserOperationOverrides,
    ) -> Tuple[int, int, int]:
        if gas_estimator is None:
            raise DependencyError(
                "a gas estimator is required if preVerificationGas, "
                "verificationGasLimit and callGasLimit are not overridden"
            )

        dummy_pairs = overrides.dummy_signer_signature_pairs
        if dummy_pairs is None:
            if self.webauthn_owner is not None:
                dummy_pairs = [create_dummy_webauthn_signer_signature_pair(self.webauthn_owner)]
            else:
                dummy_pairs = [EOA_DUMMY_SIGNER_SIGNATURE_PAIR]

        is_init = overrides.webauthn_is_init
        if is_init is None:
            is_init = user_operation.nonce == 0
        user_operation.signature = dummy_signature(dummy_pairs, self._webauthn_context(is_init))

        # estimate with zero fees so the account doesn't need funds
        user_operation_to_estimate = dataclasses.replace(
            user_operation,
            call_gas_limit=0,
            verification_gas_limit=0,
            pre_verification_gas=0,
            max_fee_per_gas=0,
            max_priority_fee_per_gas=0,
        )
        pre_verification_gas, verification_gas_limit, call_gas_limit = await gas_estimator.estimate_gas(
            user_operation_to_estimate,
            self.deployment.entry_point_address,
            overrides.state_override_set,
        )
        verification_gas_limit += len(dummy_pairs) * VERIFICATION_GAS_PER_SIGNER

        logger.info(
            f"Estimated gas: preVerificationGas={pre_verification_gas}, "
            f"verificationGasLimit={verification_gas_limit}, callGasLimit={call_gas_limit}"
        )
        return pre_verification_gas, verification_gas_limit, call_gas_limit
