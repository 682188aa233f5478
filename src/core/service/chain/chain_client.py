"""
Chain access for the paymaster: operation hashing on the VerifyingPaymaster
contract, VIP token lookups and signing with the paymaster key.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from src.core.exceptions.base import ChainClientError
from src.core.logger.logger import get_logger
from src.core.service.sponsorship.models import UserOperation
from .abi import VERIFYING_PAYMASTER_ABI, VIP_NFT_ABI

logger = get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class ChainClient(ABC):
    """Chain capabilities the sponsorship engine needs."""

    @property
    @abstractmethod
    def paymaster_address(self) -> str:
        """Checksummed address of the VerifyingPaymaster contract"""
        pass

    @abstractmethod
    async def compute_operation_hash(self, op: UserOperation, valid_until: int, valid_after: int) -> bytes:
        """Hash the paymaster contract expects to be signed for `op`"""
        pass

    @abstractmethod
    async def sign_hash(self, op_hash: bytes) -> bytes:
        """65-byte r||s||v signature over the Ethereum signed-message digest of `op_hash`"""
        pass

    @abstractmethod
    async def query_token_ownership(self, address: str) -> Optional[int]:
        """
        First VIP token id owned by `address`.

        Returns:
            Token id, or None when the address owns none. Raises ChainClientError
            when the node cannot be queried.
        """
        pass

    async def is_connected(self) -> bool:
        return True


class Web3ChainClient(ChainClient):
    """ChainClient over a JSON-RPC node through web3.py."""

    def __init__(
        self,
        rpc_url: str,
        paymaster_address: str,
        vip_contract: str,
        private_key: str,
        timeout: float = 10.0,
        web3: Optional[Web3] = None,
    ):
        self.timeout = timeout
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._signer = Account.from_key(private_key)
        self._paymaster_address = Web3.to_checksum_address(paymaster_address)
        self.paymaster = self.w3.eth.contract(address=self._paymaster_address, abi=VERIFYING_PAYMASTER_ABI)

        if vip_contract and vip_contract.lower() != ZERO_ADDRESS:
            self.vip_nft = self.w3.eth.contract(
                address=Web3.to_checksum_address(vip_contract),
                abi=VIP_NFT_ABI
            )
        else:
            self.vip_nft = None

        logger.info(
            "Chain client initialized",
            extra={
                "paymaster_contract": self._paymaster_address,
                "vip_contract": vip_contract,
                "signer": self._signer.address
            }
        )

    @property
    def paymaster_address(self) -> str:
        return self._paymaster_address

    @property
    def signer_address(self) -> str:
        return self._signer.address

    async def _call(self, description: str, fn: Callable[[], Any]) -> Any:
        """Run a blocking web3 call in a worker thread under the configured deadline."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ChainClientError(f"{description} timed out after {self.timeout}s") from e
        except Exception as e:
            raise ChainClientError(f"{description} failed: {e}") from e

    async def compute_operation_hash(self, op: UserOperation, valid_until: int, valid_after: int) -> bytes:
        call = self.paymaster.functions.getHash(op.to_abi_tuple(), valid_until, valid_after)
        op_hash = await self._call("getHash", call.call)
        return bytes(op_hash)

    async def sign_hash(self, op_hash: bytes) -> bytes:
        try:
            signed = self._signer.sign_message(encode_defunct(primitive=op_hash))
        except Exception as e:
            raise ChainClientError(f"signing failed: {e}") from e
        return bytes(signed.signature)

    async def query_token_ownership(self, address: str) -> Optional[int]:
        if self.vip_nft is None:
            return None
        call = self.vip_nft.functions.tokenOfOwnerByIndex(Web3.to_checksum_address(address), 0)
        return int(await self._call("tokenOfOwnerByIndex", call.call))

    async def is_connected(self) -> bool:
        try:
            return bool(await self._call("is_connected", self.w3.is_connected))
        except ChainClientError:
            return False
