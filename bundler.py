"""
ERC-4337 bundler and node JSON-RPC clients for Safe smart accounts
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from hexbytes import HexBytes
from web3 import Web3

from config import SmartAccountConfig
from errors import BundlerError
from user_operations import UserOperation

logger = logging.getLogger(__name__)

GET_NONCE_ABI = [{
    "inputs": [{"name": "sender", "type": "address"}, {"name": "key", "type": "uint192"}],
    "name": "getNonce",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]


def _quantity(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


class BundlerClient:
    """Client for interacting with ERC-4337 bundlers"""

    def __init__(self, bundler_url: str, timeout: int = 30):
        self.bundler_url = bundler_url
        self.timeout = timeout

    async def estimate_gas(
        self,
        user_operation: UserOperation,
        entry_point: str,
        state_override_set: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, int, int]:
        """Estimate (preVerificationGas, verificationGasLimit, callGasLimit) for a UserOperation"""
        params: List[Any] = [user_operation.to_rpc_dict(), entry_point]
        if state_override_set is not None:
            params.append(state_override_set)

        estimation = await asyncio.to_thread(self._make_bundler_request, "eth_estimateUserOperationGas", params)
        return (
            _quantity(estimation['preVerificationGas']),
            _quantity(estimation['verificationGasLimit']),
            _quantity(estimation['callGasLimit']),
        )

    async def send_user_operation(self, user_operation: UserOperation, entry_point: str) -> str:
        """Send a signed UserOperation to the bundler and return its hash"""
        logger.info("Sending UserOperation to bundler...")
        user_op_dict = user_operation.to_rpc_dict()
        logger.debug(f"Full UserOp to bundler: {user_op_dict}")

        user_operation_hash = await asyncio.to_thread(
            self._make_bundler_request, "eth_sendUserOperation", [user_op_dict, entry_point]
        )
        if not isinstance(user_operation_hash, str):
            raise BundlerError(f"Bundler returned an invalid userOp hash: {user_operation_hash}")

        logger.info(f"UserOperation sent successfully: {user_operation_hash}")
        return user_operation_hash

    async def supported_entry_points(self) -> List[str]:
        return await asyncio.to_thread(self._make_bundler_request, "eth_supportedEntryPoints", [])

    def _make_bundler_request(self, method: str, params: List) -> Any:
        """Make JSON-RPC request to bundler"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }

        response = requests.post(
            self.bundler_url,
            json=payload,
            headers={'Content-Type': 'application/json'},
            timeout=self.timeout
        )
        if response.status_code != 200:
            logger.error(f"HTTP error: {response.status_code}")
            raise BundlerError(f"Bundler responded with HTTP {response.status_code}", response.status_code)

        result = response.json()
        if 'error' in result:
            error = result['error'] or {}
            logger.error(f"Bundler error: {error.get('message', 'Unknown error')}")
            raise BundlerError(
                error.get('message', 'Unknown error'),
                error.get('code'),
                error.get('data'),
            )
        if 'result' not in result:
            raise BundlerError(f"Malformed JSON-RPC response for {method}")
        return result['result']


class NodeClient:
    """Reads account state from a node: nonce, fees, code and contract calls"""

    def __init__(self, rpc_url: str, web3: Optional[Web3] = None):
        self.rpc_url = rpc_url
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url))

    async def fetch_nonce(self, entry_point: str, account: str) -> int:
        """Get current nonce for an account from the EntryPoint"""
        return await asyncio.to_thread(self._get_nonce, entry_point, account)

    async def fetch_fee_estimate(self) -> Tuple[int, int]:
        """Return (maxFeePerGas, maxPriorityFeePerGas) from the node's fee suggestions"""
        return await asyncio.to_thread(self._get_fee_estimate)

    async def get_code(self, address: str) -> bytes:
        code = await asyncio.to_thread(self.web3.eth.get_code, Web3.to_checksum_address(address))
        return bytes(HexBytes(code))

    async def call(self, to: str, data: bytes) -> bytes:
        result = await asyncio.to_thread(
            self.web3.eth.call, {"to": Web3.to_checksum_address(to), "data": "0x" + bytes(data).hex()}
        )
        return bytes(HexBytes(result))

    def _get_nonce(self, entry_point: str, account: str) -> int:
        entry_point_contract = self.web3.eth.contract(
            address=self.web3.to_checksum_address(entry_point),
            abi=GET_NONCE_ABI
        )

        nonce = entry_point_contract.functions.getNonce(
            self.web3.to_checksum_address(account),
            0  # Default key
        ).call()

        logger.info(f"Current nonce: {nonce}")
        return nonce

    def _get_fee_estimate(self) -> Tuple[int, int]:
        gas_price = self.web3.eth.gas_price
        max_priority_fee_per_gas = self.web3.eth.max_priority_fee
        max_fee_per_gas = max(gas_price, max_priority_fee_per_gas)
        logger.info(f"Gas prices: maxFeePerGas={max_fee_per_gas}, maxPriorityFeePerGas={max_priority_fee_per_gas}")
        return max_fee_per_gas, max_priority_fee_per_gas


def create_clients(config: SmartAccountConfig) -> Tuple[NodeClient, BundlerClient]:
    """Create node and bundler clients from network configuration"""
    return NodeClient(config.node_rpc_url), BundlerClient(config.bundler_rpc_url, config.request_timeout)
