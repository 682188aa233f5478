"""Sponsorship engine: gas allowance lifecycle and paymaster authorization signing."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from eth_utils import is_address

from src.core.exceptions.base import (
    AccountDisabled,
    AccountLookupFailed,
    ChainClientError,
    FrequentRequest,
    InsufficientGas,
    InternalError,
    InvalidParams,
    StaleAccountError,
)
from src.core.logger.logger import get_logger
from src.core.service.chain.chain_client import ChainClient
from .account_lock import AccountLockManager, AccountLocks
from .authorization import build_paymaster_and_data, validity_window
from .gas_estimator import GasEstimator
from .models import (
    NO_VIP_TOKEN,
    Account,
    GasStatus,
    GasTierConfig,
    SponsorshipResult,
    TierConfigView,
    UserOperation,
    encode_hex_bytes,
    utcnow,
)
from .store import AccountStore

logger = get_logger(__name__)

T = TypeVar("T")


class SponsorshipEngine:
    """Grants gas allowances and signs sponsorships against them."""

    def __init__(
        self,
        tiers: GasTierConfig,
        store: AccountStore,
        chain: ChainClient,
        estimator: GasEstimator,
        locks: Optional[AccountLocks] = None,
        store_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tiers = tiers
        self.store = store
        self.chain = chain
        self.estimator = estimator
        self.locks = locks or AccountLockManager()
        self.store_timeout = store_timeout
        self.clock = clock

    async def _store_call(self, description: str, call: Awaitable[T], context: Dict[str, Any]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Account store {description} timed out", extra=context)
            raise
        except Exception as e:
            logger.error(
                f"Account store {description} failed",
                extra={**context, "error_type": type(e).__name__, "error": str(e)}
            )
            raise

    async def _find_account(self, address: str) -> Optional[Account]:
        try:
            return await self._store_call("lookup", self.store.find_by_address(address), {"address": address})
        except asyncio.TimeoutError as e:
            raise InternalError(data="account store timeout") from e
        except Exception as e:
            raise AccountLookupFailed() from e

    async def _find_vip_holder(self, token_id: int) -> Optional[Account]:
        try:
            return await self._store_call(
                "VIP lookup", self.store.find_by_vip_token_id(token_id), {"vip_token_id": token_id}
            )
        except asyncio.TimeoutError as e:
            raise InternalError(data="account store timeout") from e
        except Exception as e:
            raise AccountLookupFailed() from e

    async def _save_account(self, account: Account) -> Account:
        try:
            return await self._store_call("save", self.store.save(account), {"address": account.address})
        except asyncio.TimeoutError as e:
            raise InternalError(data="account store timeout") from e
        except StaleAccountError as e:
            raise InternalError(data="concurrent account update") from e
        except Exception as e:
            raise InternalError() from e

    async def _vip_token_of(self, address: str) -> Optional[int]:
        try:
            return await self.chain.query_token_ownership(address)
        except ChainClientError as e:
            # Treated as "not VIP"
            logger.debug("VIP ownership query failed", extra={"address": address, "error": str(e)})
            return None

    @staticmethod
    def _normalize_address(address: str) -> str:
        if not isinstance(address, str) or not is_address(address):
            raise InvalidParams(data="Invalid address")
        return address.lower()

    async def request_gas(self, address: str) -> bool:
        """
        Grant a gas allowance to `address`.

        Tiers, in priority order: VIP token holders get max_vip_gas once per token
        per window; returning accounts inside the window are refused; disabled
        accounts are refused; brand-new accounts get create_gas; everyone else
        gets max_gas. A holder whose token was granted inside the window is
        refused with "frequent requests with NFT"; it never falls through to
        the regular tiers.

        Raises:
            FrequentRequest: last grant (or the token's last grant) is inside the window
            AccountDisabled: the account was disabled
            InternalError: the grant could not be persisted
        """
        address = self._normalize_address(address)

        async with self.locks.hold(address):
            account = await self._find_account(address)
            token_id = await self._vip_token_of(address)
            now = self.clock()
            window = self.tiers.rate_limit_window

            if token_id is not None:
                if account is not None and not account.enabled:
                    raise AccountDisabled(data=address)
                holder = await self._find_vip_holder(token_id)
                if holder is not None and holder.is_rate_limited(now, window):
                    raise FrequentRequest("frequent requests with NFT", data=address)
                allowance = self.tiers.max_vip_gas
            elif account is not None:
                if account.is_rate_limited(now, window):
                    raise FrequentRequest(data=address)
                if not account.enabled:
                    raise AccountDisabled(data=address)
                allowance = self.tiers.max_gas
            else:
                allowance = self.tiers.create_gas

            if account is None:
                account = Account(address=address)

            granted = account.model_copy(update={
                "remaining_gas": allowance,
                "last_request_time": now,
                "vip_token_id": token_id if token_id is not None else NO_VIP_TOKEN,
            })
            await self._save_account(granted)

        logger.info(
            "Gas allowance granted",
            extra={
                "address": address,
                "allowance": str(allowance),
                "vip_token_id": token_id
            }
        )
        return True

    async def sponsor_user_operation(self, raw_op: Dict[str, Any], entry_point: str) -> SponsorshipResult:
        """
        Deduct the operation's maximum gas cost from the sender's allowance and
        return a signed paymasterAndData valid for one day.

        The deduction is committed before anything is signed; a refusal or a
        failed commit leaves the account untouched and returns no authorization.
        """
        op = UserOperation.from_raw(raw_op)
        address = op.sender.lower()

        async with self.locks.hold(address):
            account = await self._find_account(address)
            # Unknown and disabled accounts are indistinguishable to the caller
            if account is None or not account.enabled:
                raise InsufficientGas()

            limits = await self.estimator.estimate(op)
            total_cost = limits.total * op.max_fee_per_gas
            if total_cost > account.remaining_gas:
                raise InsufficientGas()

            charged = account.model_copy(update={
                "used_gas": account.used_gas + total_cost,
                "remaining_gas": account.remaining_gas - total_cost,
            })
            await self._save_account(charged)

        logger.info(
            "Sponsorship charged",
            extra={
                "address": address,
                "entry_point": entry_point,
                "total_cost": str(total_cost),
                "remaining_gas": str(charged.remaining_gas)
            }
        )

        valid_until, valid_after = validity_window(int(self.clock().timestamp()))
        paymaster = self.chain.paymaster_address
        signing_op = op.with_gas_limits(limits).model_copy(update={
            "paymaster_and_data": build_paymaster_and_data(paymaster, valid_until, valid_after),
            "signature": b"",
        })

        try:
            op_hash = await self.chain.compute_operation_hash(signing_op, valid_until, valid_after)
            signature = await self.chain.sign_hash(op_hash)
        except ChainClientError as e:
            logger.error(
                "Sponsorship signing failed after charge",
                extra={"address": address, "total_cost": str(total_cost), "error": str(e)}
            )
            raise InternalError() from e

        return SponsorshipResult(
            paymaster_and_data="0x" + build_paymaster_and_data(
                paymaster, valid_until, valid_after, signature
            ).hex(),
            pre_verification_gas=encode_hex_bytes(limits.pre_verification_gas),
            verification_gas_limit=encode_hex_bytes(limits.verification_gas_limit),
            call_gas_limit=encode_hex_bytes(limits.call_gas_limit),
        )

    async def get_remaining_gas(self, address: str) -> GasStatus:
        """Allowance status; unknown and disabled accounts both report zeros."""
        account = await self._find_account(address.lower())
        if account is None or not account.enabled:
            return GasStatus(remain="0", last_request=0, total_used="0")
        return GasStatus(
            remain=str(account.remaining_gas),
            last_request=int(account.last_request_time.timestamp()) if account.last_request_time else 0,
            total_used=str(account.used_gas),
        )

    def get_config(self) -> TierConfigView:
        return TierConfigView(
            max_gas=str(self.tiers.max_gas),
            vip_contract=self.tiers.vip_contract,
            max_vip_gas=str(self.tiers.max_vip_gas),
        )
