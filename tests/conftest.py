"""
Shared fixtures: in-memory account store, a chain client that signs with a real
key but never touches a node, and a controllable clock.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from eth_abi import decode
from eth_utils import keccak, to_checksum_address

from src.core.exceptions.base import AccountStoreError, ChainClientError, StaleAccountError
from src.core.service.chain.chain_client import ChainClient
from src.core.service.sponsorship.account_lock import AccountLockManager
from src.core.service.sponsorship.gas_estimator import FixedGasEstimator
from src.core.service.sponsorship.models import Account, GasLimits, GasTierConfig, UserOperation
from src.core.service.sponsorship.sponsorship_service import SponsorshipEngine

PAYMASTER_ADDRESS = "0x1111111111111111111111111111111111111111"
VIP_CONTRACT = "0x2222222222222222222222222222222222222222"
SIGNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

ADDRESS_A = "0x00000000000000000000000000000000000000aa"
ADDRESS_B = "0x00000000000000000000000000000000000000bb"


class InMemoryAccountStore:
    """AccountStore double with the same versioning contract as the SQL repository"""

    def __init__(self):
        self.accounts: Dict[str, Account] = {}
        self.saves: List[Account] = []
        self.fail_find = False
        self.fail_save: Optional[Exception] = None

    def put(self, account: Account) -> Account:
        stored = account.model_copy(update={"version": max(account.version, 1)})
        self.accounts[stored.address] = stored
        return stored

    async def find_by_address(self, address: str) -> Optional[Account]:
        if self.fail_find:
            raise AccountStoreError("lookup failed")
        return self.accounts.get(address.lower())

    async def find_by_vip_token_id(self, token_id: int) -> Optional[Account]:
        if self.fail_find:
            raise AccountStoreError("lookup failed")
        holders = [a for a in self.accounts.values() if a.vip_token_id == token_id]
        if not holders:
            return None
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return max(holders, key=lambda a: a.last_request_time or epoch)

    async def save(self, account: Account) -> Account:
        if self.fail_save is not None:
            raise self.fail_save
        current = self.accounts.get(account.address)
        current_version = current.version if current else 0
        if current_version != account.version:
            raise StaleAccountError(account.address)
        stored = account.model_copy(update={"version": account.version + 1})
        self.accounts[stored.address] = stored
        self.saves.append(stored)
        return stored


class FakeChainClient(ChainClient):
    """Hashes operations locally and signs with a fixed key"""

    def __init__(self, private_key: str = SIGNER_KEY, paymaster_address: str = PAYMASTER_ADDRESS):
        self.signer = EthAccount.from_key(private_key)
        self._paymaster_address = paymaster_address
        self.vip_tokens: Dict[str, int] = {}
        self.fail_ownership = False
        self.fail_hash = False
        self.hashed: List[UserOperation] = []

    @property
    def paymaster_address(self) -> str:
        return self._paymaster_address

    async def compute_operation_hash(self, op: UserOperation, valid_until: int, valid_after: int) -> bytes:
        if self.fail_hash:
            raise ChainClientError("getHash failed: node down")
        self.hashed.append(op)
        return keccak(
            op.sender.encode()
            + op.paymaster_and_data
            + valid_until.to_bytes(6, "big")
            + valid_after.to_bytes(6, "big")
        )

    async def sign_hash(self, op_hash: bytes) -> bytes:
        return bytes(self.signer.sign_message(encode_defunct(primitive=op_hash)).signature)

    async def query_token_ownership(self, address: str) -> Optional[int]:
        if self.fail_ownership:
            raise ChainClientError("tokenOfOwnerByIndex failed: execution reverted")
        return self.vip_tokens.get(address.lower())


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


DEFAULT_LIMITS = GasLimits(pre_verification_gas=52304, verification_gas_limit=100000, call_gas_limit=33100)


@pytest.fixture
def tiers() -> GasTierConfig:
    return GasTierConfig(
        create_gas=1_000_000,
        max_gas=5_000_000,
        max_vip_gas=50_000_000,
        vip_contract=VIP_CONTRACT
    )


@pytest.fixture
def store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_engine(tiers, store, chain, clock):
    """Engine factory; gas limits can be overridden per test"""
    def factory(limits: GasLimits = DEFAULT_LIMITS, **kwargs) -> SponsorshipEngine:
        return SponsorshipEngine(
            tiers=kwargs.pop("tiers", tiers),
            store=kwargs.pop("store", store),
            chain=kwargs.pop("chain", chain),
            estimator=FixedGasEstimator(limits),
            locks=kwargs.pop("locks", AccountLockManager()),
            clock=clock,
            **kwargs
        )
    return factory


@pytest.fixture
def engine(make_engine) -> SponsorshipEngine:
    return make_engine()


@pytest.fixture
def user_operation_payload():
    """Wire form of a v0.6 user operation from ADDRESS_A"""
    def build(sender: str = ADDRESS_A, max_fee_per_gas: str = "0x1", **overrides):
        payload = {
            "sender": sender,
            "nonce": "0x0",
            "initCode": "0x",
            "callData": "0xb61d27f6",
            "callGasLimit": "0x0",
            "verificationGasLimit": "0x0",
            "preVerificationGas": "0x0",
            "maxFeePerGas": max_fee_per_gas,
            "maxPriorityFeePerGas": "0x1",
            "paymasterAndData": "0x",
            "signature": "0x"
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def split_paymaster_and_data():
    """Split signed paymasterAndData into (paymaster, valid_until, valid_after, signature)"""
    def split(data: bytes):
        if len(data) != 20 + 64 + 65:
            raise ValueError(f"paymasterAndData must be 149 bytes, got {len(data)}")
        valid_until, valid_after = decode(["uint48", "uint48"], data[20:84])
        return to_checksum_address(data[:20]), valid_until, valid_after, data[84:]
    return split
