"""
Account repository using SQLAlchemy ORM
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions.base import AccountStoreError, StaleAccountError
from src.core.service.sponsorship.models import Account
from src.core.service.sponsorship.store import AccountStore
from src.infra.models import AccountModel
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AccountRepository(AccountStore):
    """Account ledger with optimistic, version-checked saves"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    def _model_to_entity(self, model: AccountModel) -> Account:
        """Convert SQLAlchemy model to Pydantic entity"""
        return Account(
            address=model.address,
            enabled=model.enable,
            remaining_gas=int(model.remain_gas),
            used_gas=int(model.used_gas),
            last_request_time=_as_utc(model.last_request),
            vip_token_id=int(model.vip_id),
            version=model.version
        )

    async def find_by_address(self, address: str) -> Optional[Account]:
        try:
            async with self.session_factory() as session:
                stmt = select(AccountModel).where(AccountModel.address == address.lower())
                result = await session.execute(stmt)
                model = result.scalar_one_or_none()
                return self._model_to_entity(model) if model else None

        except Exception as e:
            logger.error(
                "Failed to get account by address",
                extra={"address": address, "error": str(e)}
            )
            raise AccountStoreError(str(e)) from e

    async def find_by_vip_token_id(self, token_id: int) -> Optional[Account]:
        """Most recently granted account linked to the token"""
        try:
            async with self.session_factory() as session:
                stmt = (
                    select(AccountModel)
                    .where(AccountModel.vip_id == str(token_id))
                    .order_by(AccountModel.last_request.desc())
                    .limit(1)
                )
                result = await session.execute(stmt)
                model = result.scalar_one_or_none()
                return self._model_to_entity(model) if model else None

        except Exception as e:
            logger.error(
                "Failed to get account by VIP token",
                extra={"vip_token_id": token_id, "error": str(e)}
            )
            raise AccountStoreError(str(e)) from e

    async def _insert(self, session: AsyncSession, account: Account) -> int:
        session.add(AccountModel(
            address=account.address,
            enable=account.enabled,
            remain_gas=str(account.remaining_gas),
            used_gas=str(account.used_gas),
            last_request=account.last_request_time,
            vip_id=str(account.vip_token_id),
            version=1
        ))
        await session.commit()
        return 1

    async def _update(self, session: AsyncSession, account: Account) -> int:
        stmt = (
            update(AccountModel)
            .where(
                AccountModel.address == account.address,
                AccountModel.version == account.version
            )
            .values(
                enable=account.enabled,
                remain_gas=str(account.remaining_gas),
                used_gas=str(account.used_gas),
                last_request=account.last_request_time,
                vip_id=str(account.vip_token_id),
                version=AccountModel.version + 1,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            await session.rollback()
            raise StaleAccountError(f"account {account.address} changed since version {account.version}")
        await session.commit()
        return account.version + 1

    async def save(self, account: Account) -> Account:
        async with self.session_factory() as session:
            try:
                if account.version == 0:
                    version = await self._insert(session, account)
                else:
                    version = await self._update(session, account)

            except StaleAccountError:
                logger.warning(
                    "Account save lost against concurrent update",
                    extra={"address": account.address, "version": account.version}
                )
                raise

            except IntegrityError as e:
                await session.rollback()
                logger.warning(
                    "Account created concurrently",
                    extra={"address": account.address}
                )
                raise StaleAccountError(f"account {account.address} already exists") from e

            except Exception as e:
                await session.rollback()
                logger.error(
                    "Failed to save account",
                    extra={"address": account.address, "error": str(e)}
                )
                raise AccountStoreError(str(e)) from e

        logger.debug(
            "Account saved",
            extra={"address": account.address, "version": version}
        )
        return account.model_copy(update={"version": version})
