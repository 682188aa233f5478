"""Gas limit estimation for sponsored operations."""

from abc import ABC, abstractmethod

from .models import GasLimits, UserOperation


class GasEstimator(ABC):
    """Decides the gas limits the paymaster signs for."""

    @abstractmethod
    async def estimate(self, op: UserOperation) -> GasLimits:
        pass


class FixedGasEstimator(GasEstimator):
    """Same limits for every operation."""

    def __init__(self, limits: GasLimits):
        self.limits = limits

    @classmethod
    def from_settings(cls, settings) -> "FixedGasEstimator":
        return cls(GasLimits(
            pre_verification_gas=settings.PRE_VERIFICATION_GAS,
            verification_gas_limit=settings.VERIFICATION_GAS_LIMIT,
            call_gas_limit=settings.CALL_GAS_LIMIT,
        ))

    async def estimate(self, op: UserOperation) -> GasLimits:
        return self.limits
