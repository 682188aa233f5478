"""JSON-RPC bindings of the paymaster operations."""

from typing import Any, Dict, Optional

from src.api.utils.metrics import SimpleMetrics
from src.core.rpc.dispatcher import MethodRegistry
from src.core.rpc.params import ParamShape
from src.core.service.sponsorship.models import (
    GasStatus,
    SponsorshipResult,
    TierConfigView,
)
from src.core.service.sponsorship.sponsorship_service import SponsorshipEngine
from src.core.logger.logger import logger


def _quantity(value: str) -> int:
    # "0x" encodes zero
    return int(value, 16) if len(value) > 2 else 0


class PaymasterController:
    """Controller exposing the sponsorship engine as pm_* JSON-RPC methods."""

    def __init__(self, engine: SponsorshipEngine, metrics: Optional[SimpleMetrics] = None):
        self.engine = engine
        self.metrics = metrics

    async def sponsor_user_operation(self, user_operation: Dict[str, Any], entry_point: str) -> SponsorshipResult:
        logger.info(f"Sponsorship requested for sender: {user_operation.get('sender')}")
        result = await self.engine.sponsor_user_operation(user_operation, entry_point)
        if self.metrics:
            gas = sum(
                _quantity(value)
                for value in (result.pre_verification_gas, result.verification_gas_limit, result.call_gas_limit)
            )
            self.metrics.record_sponsorship(gas)
        return result

    async def gas_remain(self, address: str) -> GasStatus:
        return await self.engine.get_remaining_gas(address)

    async def config(self) -> TierConfigView:
        return self.engine.get_config()

    async def request_gas(self, address: str) -> bool:
        logger.info(f"Gas allowance requested for address: {address}")
        granted = await self.engine.request_gas(address)
        if granted and self.metrics:
            self.metrics.record_grant()
        return granted

    def register(self, registry: MethodRegistry) -> MethodRegistry:
        registry.register(
            "pm_sponsorUserOperation",
            self.sponsor_user_operation,
            (ParamShape.MAP, ParamShape.STRING)
        )
        registry.register("pm_gasRemain", self.gas_remain, (ParamShape.STRING,))
        registry.register("pm_config", self.config)
        registry.register("pm_requestGas", self.request_gas, (ParamShape.STRING,))
        return registry
