"""API key model and store interface for caller authorization."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ApiKey(BaseModel):
    """Credential a caller embeds in the endpoint path"""
    key: str
    name: Optional[str] = None
    enabled: bool = True
    created_at: Optional[datetime] = None


class ApiKeyStore(ABC):
    @abstractmethod
    async def find_by_key(self, key: str) -> Optional[ApiKey]:
        """Look up an API key; raises on storage failure"""
        pass
