"""Persistence interface the sponsorship engine depends on."""

from abc import ABC, abstractmethod
from typing import Optional

from .models import Account


class AccountStore(ABC):
    """
    Durable account ledger.

    Implementations raise AccountStoreError on storage failure and
    StaleAccountError when save() loses against a concurrent writer.
    """

    @abstractmethod
    async def find_by_address(self, address: str) -> Optional[Account]:
        """Look up an account by lower-case address"""
        pass

    @abstractmethod
    async def find_by_vip_token_id(self, token_id: int) -> Optional[Account]:
        """Look up the account currently linked to a VIP token"""
        pass

    @abstractmethod
    async def save(self, account: Account) -> Account:
        """
        Persist the account if nobody wrote it since it was read.

        Returns:
            The stored account with its new version
        """
        pass
