"""
FastAPI dependency injection functions.
Long-lived collaborators (chain client, account locks, tier config) are built once;
stores, engine and dispatcher are assembled per request around them.
"""

from functools import lru_cache
from fastapi import Depends, Request

from src.api.controller.paymaster.paymaster_controller import PaymasterController
from src.api.middleware.authentication.api_key_gate import ApiKeyGate
from src.api.utils.metrics import SimpleMetrics, get_metrics
from src.core.exceptions.base import ParseError
from src.core.rpc.dispatcher import MethodRegistry, RequestDispatcher
from src.core.service.access.models import ApiKey
from src.core.service.chain.chain_client import ChainClient, Web3ChainClient
from src.core.service.sponsorship.account_lock import (
    AccountLockManager,
    AccountLocks,
    RedisAccountLockManager,
)
from src.core.service.sponsorship.gas_estimator import FixedGasEstimator, GasEstimator
from src.core.service.sponsorship.models import GasTierConfig
from src.core.service.sponsorship.sponsorship_service import SponsorshipEngine
from src.infra.config.redis import create_redis_client
from src.infra.config.settings import get_settings
from src.infra.database import get_database_manager
from src.infra.repository.account_repository import AccountRepository
from src.infra.repository.api_key_repository import ApiKeyRepository
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


@lru_cache()
def get_gas_tier_config() -> GasTierConfig:
    """Tier ceilings parsed once from settings."""
    return GasTierConfig.from_settings(get_settings())


@lru_cache()
def get_gas_estimator() -> GasEstimator:
    return FixedGasEstimator.from_settings(get_settings())


@lru_cache()
def get_chain_client() -> ChainClient:
    """Chain client bound to the paymaster key (cached)."""
    settings = get_settings()
    if not settings.PRIVATE_KEY:
        raise RuntimeError("PRIVATE_KEY not configured - paymaster cannot sign")
    return Web3ChainClient(
        rpc_url=settings.RPC_URL,
        paymaster_address=settings.PAYMASTER_CONTRACT,
        vip_contract=settings.VIP_CONTRACT,
        private_key=settings.PRIVATE_KEY,
        timeout=settings.CHAIN_CALL_TIMEOUT_SECONDS
    )


@lru_cache()
def get_account_locks() -> AccountLocks:
    """Process-wide account lock manager; must be shared by every engine instance."""
    settings = get_settings()
    if settings.ACCOUNT_LOCK_BACKEND == "redis":
        logger.info("Using Redis account locks")
        return RedisAccountLockManager(
            create_redis_client(),
            timeout=settings.ACCOUNT_LOCK_TIMEOUT_SECONDS
        )
    return AccountLockManager()


async def get_account_repository() -> AccountRepository:
    session_factory = await get_database_manager().get_session_factory()
    return AccountRepository(session_factory)


async def get_api_key_repository() -> ApiKeyRepository:
    session_factory = await get_database_manager().get_session_factory()
    return ApiKeyRepository(session_factory)


async def get_api_key_gate(
    api_key_repository: ApiKeyRepository = Depends(get_api_key_repository)
) -> ApiKeyGate:
    return ApiKeyGate(api_key_repository)


async def require_api_key(
    key: str,
    request: Request,
    gate: ApiKeyGate = Depends(get_api_key_gate)
) -> ApiKey:
    """
    Accept the API key in the path before anything that touches the chain is built.

    An empty body is refused first; RPCErrors raised here are answered by the
    application error handler.
    """
    body = await request.body()
    if not body:
        raise ParseError(data="No POST data")
    return await gate.authorize(key)


async def get_sponsorship_engine(
    account_repository: AccountRepository = Depends(get_account_repository)
) -> SponsorshipEngine:
    """Sponsorship engine over the shared chain client and account locks."""
    return SponsorshipEngine(
        tiers=get_gas_tier_config(),
        store=account_repository,
        chain=get_chain_client(),
        estimator=get_gas_estimator(),
        locks=get_account_locks(),
        store_timeout=get_settings().STORE_CALL_TIMEOUT_SECONDS
    )


async def get_dispatcher(
    api_key: ApiKey = Depends(require_api_key),
    engine: SponsorshipEngine = Depends(get_sponsorship_engine),
    metrics: SimpleMetrics = Depends(get_metrics)
) -> RequestDispatcher:
    """JSON-RPC dispatcher with the pm_* methods registered; built only for an accepted key."""
    registry = PaymasterController(engine, metrics).register(MethodRegistry())
    return RequestDispatcher(registry, observer=metrics.record_call)
