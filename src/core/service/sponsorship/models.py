"""Models for the sponsorship engine."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

from eth_utils import is_address, to_checksum_address
from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.core.exceptions.base import InvalidParams

NO_VIP_TOKEN = -1
UINT256_MAX = (1 << 256) - 1


class Account(BaseModel):
    """Gas allowance ledger for one sender address"""
    address: str  # lower-case
    enabled: bool = True
    remaining_gas: int = Field(default=0, ge=0)
    used_gas: int = Field(default=0, ge=0)
    last_request_time: Optional[datetime] = None
    vip_token_id: int = NO_VIP_TOKEN
    version: int = 0  # 0 until first persisted; bumped by every save

    @field_validator("address")
    @classmethod
    def _lower_address(cls, value: str) -> str:
        return value.lower()

    @property
    def is_vip(self) -> bool:
        return self.vip_token_id != NO_VIP_TOKEN

    def is_rate_limited(self, now: datetime, window: timedelta) -> bool:
        """True while the last allowance grant is still inside the window."""
        if self.last_request_time is None:
            return False
        return self.last_request_time + window > now


class GasTierConfig(BaseModel):
    """Allowance ceilings, fixed for the life of the process"""
    model_config = ConfigDict(frozen=True)

    create_gas: int = Field(ge=0)
    max_gas: int = Field(ge=0)
    max_vip_gas: int = Field(ge=0)
    vip_contract: str = ""
    rate_limit_window: timedelta = timedelta(days=1)

    @classmethod
    def from_settings(cls, settings: Any) -> "GasTierConfig":
        """Parse the base-10 tier strings from settings."""
        return cls(
            create_gas=int(settings.CREATE_GAS, 10),
            max_gas=int(settings.MAX_GAS, 10),
            max_vip_gas=int(settings.VIP_MAX_GAS, 10),
            vip_contract=settings.VIP_CONTRACT,
        )


class GasLimits(BaseModel):
    """Gas limits the paymaster commits to for one operation"""
    model_config = ConfigDict(frozen=True)

    pre_verification_gas: int = Field(ge=0)
    verification_gas_limit: int = Field(ge=0)
    call_gas_limit: int = Field(ge=0)

    @property
    def total(self) -> int:
        return self.pre_verification_gas + self.verification_gas_limit + self.call_gas_limit


def _parse_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("quantity must be a number or hex string")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            number = int(text, 16) if len(text) > 2 else 0
        elif text.isdigit():
            number = int(text, 10)
        else:
            raise ValueError("quantity must be hex (0x...) or decimal")
    else:
        raise ValueError("quantity must be a number or hex string")
    if number < 0 or number > UINT256_MAX:
        raise ValueError("quantity out of uint256 range")
    return number


def _parse_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        text = value.strip()
        if text in ("", "0x", "0X"):
            return b""
        if not text.lower().startswith("0x"):
            raise ValueError("byte strings must be 0x-prefixed hex")
        return bytes(HexBytes(text))
    raise ValueError("byte strings must be 0x-prefixed hex")


class UserOperation(BaseModel):
    """ERC-4337 (entry point v0.6) user operation as received on the wire"""
    model_config = ConfigDict(populate_by_name=True)

    sender: str
    nonce: int
    init_code: bytes = Field(default=b"", alias="initCode")
    call_data: bytes = Field(alias="callData")
    call_gas_limit: int = Field(default=0, alias="callGasLimit")
    verification_gas_limit: int = Field(default=0, alias="verificationGasLimit")
    pre_verification_gas: int = Field(default=0, alias="preVerificationGas")
    max_fee_per_gas: int = Field(alias="maxFeePerGas")
    max_priority_fee_per_gas: int = Field(alias="maxPriorityFeePerGas")
    paymaster_and_data: bytes = Field(default=b"", alias="paymasterAndData")
    signature: bytes = b""

    @field_validator("sender", mode="before")
    @classmethod
    def _checksum_sender(cls, value: Any) -> str:
        if not isinstance(value, str) or not is_address(value):
            raise ValueError("sender must be a 20-byte hex address")
        return to_checksum_address(value)

    @field_validator(
        "nonce", "call_gas_limit", "verification_gas_limit", "pre_verification_gas",
        "max_fee_per_gas", "max_priority_fee_per_gas",
        mode="before",
    )
    @classmethod
    def _quantity(cls, value: Any) -> int:
        return _parse_quantity(value)

    @field_validator("init_code", "call_data", "paymaster_and_data", "signature", mode="before")
    @classmethod
    def _hex_bytes(cls, value: Any) -> bytes:
        return _parse_bytes(value)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "UserOperation":
        """Parse a wire user operation; malformed input is InvalidParams."""
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                for error in e.errors()
            ]
            raise InvalidParams(data="Invalid user operation: " + "; ".join(problems)) from e

    def with_gas_limits(self, limits: GasLimits) -> "UserOperation":
        return self.model_copy(update={
            "pre_verification_gas": limits.pre_verification_gas,
            "verification_gas_limit": limits.verification_gas_limit,
            "call_gas_limit": limits.call_gas_limit,
        })

    def to_abi_tuple(self) -> Tuple[Union[str, int, bytes], ...]:
        """Field order of the UserOperation struct in the entry point ABI."""
        return (
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            self.call_gas_limit,
            self.verification_gas_limit,
            self.pre_verification_gas,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            self.paymaster_and_data,
            self.signature,
        )


def encode_hex_bytes(value: int) -> str:
    """Minimal big-endian byte encoding of a non-negative integer, 0x-prefixed."""
    return "0x" + value.to_bytes((value.bit_length() + 7) // 8, "big").hex()


class SponsorshipResult(BaseModel):
    """Response model for pm_sponsorUserOperation"""
    model_config = ConfigDict(populate_by_name=True)

    paymaster_and_data: str = Field(alias="paymasterAndData")
    pre_verification_gas: str = Field(alias="preVerificationGas")
    verification_gas_limit: str = Field(alias="verificationGasLimit")
    call_gas_limit: str = Field(alias="callGasLimit")


class GasStatus(BaseModel):
    """Response model for pm_gasRemain"""
    remain: str
    last_request: int
    total_used: str


class TierConfigView(BaseModel):
    """Response model for pm_config"""
    max_gas: str
    vip_contract: str
    max_vip_gas: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
