"""
Per-address serialization of check-then-mutate sequences on an account.

AccountLockManager only serializes callers inside one process. Deployments that
run several workers use RedisAccountLockManager so the lock is shared.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from redis.asyncio import Redis

from src.core.exceptions.base import InternalError
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class AccountLocks(ABC):
    @abstractmethod
    def hold(self, address: str):
        """Async context manager holding the exclusive lock for `address`"""
        pass


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class AccountLockManager(AccountLocks):
    """In-process asyncio lock per address; idle entries are dropped."""

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, address: str) -> AsyncIterator[None]:
        key = address.lower()
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class RedisAccountLockManager(AccountLocks):
    """Redis lock per address, shared by every worker pointing at the same Redis."""

    def __init__(self, redis_client: Redis, timeout: float = 30.0, blocking_timeout: float = 10.0):
        self.redis = redis_client
        self.key_prefix = "paymaster:lock:account:"
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, address: str) -> AsyncIterator[None]:
        key = f"{self.key_prefix}{address.lower()}"
        lock = self.redis.lock(key, timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        try:
            acquired = await lock.acquire()
        except Exception as e:
            logger.error(
                "Failed to acquire account lock",
                extra={"address": address, "error": str(e)}
            )
            raise InternalError(data="account lock unavailable") from e
        if not acquired:
            logger.warning("Timed out waiting for account lock", extra={"address": address})
            raise InternalError(data="account busy")
        try:
            yield
        finally:
            try:
                await lock.release()
            except Exception as e:
                # Lock expired under us; the conditional save still guards the ledger
                logger.warning(
                    "Failed to release account lock",
                    extra={"address": address, "error": str(e)}
                )
