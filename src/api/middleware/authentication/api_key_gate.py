from typing import Optional

from src.core.exceptions.base import ParseError
from src.core.service.access.models import ApiKey, ApiKeyStore
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class ApiKeyGate:
    """Authorizes the caller by the API key in the request path, before dispatch."""

    def __init__(self, store: ApiKeyStore):
        self.store = store

    async def authorize(self, key: Optional[str]) -> ApiKey:
        if not key:
            raise ParseError("Key error", data="No key")

        try:
            api_key = await self.store.find_by_key(key)
        except Exception as e:
            logger.error(f"Query api key error: {e}")
            raise ParseError("Database error", data="Query apikey error") from e

        if api_key is None or not api_key.enabled:
            logger.warning(
                "Rejected API key",
                extra={"key_prefix": key[:4], "known": api_key is not None}
            )
            raise ParseError("Key error", data="Apikey error")

        return api_key
