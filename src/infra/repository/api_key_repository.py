"""
API key repository using SQLAlchemy ORM
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.service.access.models import ApiKey, ApiKeyStore
from src.infra.models import ApiKeyModel
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class ApiKeyRepository(ApiKeyStore):
    """Repository for API key records"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_by_key(self, key: str) -> Optional[ApiKey]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(ApiKeyModel).where(ApiKeyModel.key == key))
                model = result.scalar_one_or_none()
                if not model:
                    return None
                return ApiKey(
                    key=model.key,
                    name=model.name,
                    enabled=model.enable,
                    created_at=model.created_at
                )

        except Exception as e:
            logger.error(
                "Failed to get API key",
                extra={"error": str(e)}
            )
            raise

    async def create(self, key: str, name: Optional[str] = None, enabled: bool = True) -> ApiKey:
        """Provision a new API key"""
        async with self.session_factory() as session:
            try:
                model = ApiKeyModel(key=key, name=name, enable=enabled)
                session.add(model)
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(
                    "Failed to create API key",
                    extra={"key_name": name, "error": str(e)}
                )
                raise

        logger.info("API key created", extra={"key_name": name})
        return ApiKey(key=key, name=name, enabled=enabled, created_at=model.created_at)
