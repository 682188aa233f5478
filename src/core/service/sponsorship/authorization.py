"""
paymasterAndData layout understood by the VerifyingPaymaster contract:

    paymaster address (20 bytes)
    abi.encode(uint48 validUntil, uint48 validAfter) (64 bytes)
    signature (65 bytes)

The hash the paymaster signs is computed over an operation whose
paymasterAndData already carries the real address and time range followed by a
zero-filled signature, and whose own signature is empty.
"""

from typing import Tuple

from eth_abi import encode
from eth_utils import to_canonical_address

VALIDITY_WINDOW_SECONDS = 86400
SIGNATURE_LENGTH = 65
EMPTY_SIGNATURE = bytes(SIGNATURE_LENGTH)

_TIME_RANGE_TYPES = ["uint48", "uint48"]


def validity_window(now: int) -> Tuple[int, int]:
    """(valid_until, valid_after) for an authorization issued at `now`."""
    valid_after = now
    return valid_after + VALIDITY_WINDOW_SECONDS, valid_after


def encode_time_range(valid_until: int, valid_after: int) -> bytes:
    return encode(_TIME_RANGE_TYPES, [valid_until, valid_after])


def build_paymaster_and_data(
    paymaster_address: str,
    valid_until: int,
    valid_after: int,
    signature: bytes = EMPTY_SIGNATURE,
) -> bytes:
    if len(signature) != SIGNATURE_LENGTH:
        raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}")
    return (
        to_canonical_address(paymaster_address)
        + encode_time_range(valid_until, valid_after)
        + signature
    )

