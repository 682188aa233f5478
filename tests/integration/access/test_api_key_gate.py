from unittest.mock import AsyncMock

import pytest

from src.api.middleware.authentication.api_key_gate import ApiKeyGate
from src.core.exceptions.base import ParseError
from src.core.service.access.models import ApiKey


def _gate(result=None, error=None):
    store = AsyncMock()
    store.find_by_key = AsyncMock(return_value=result, side_effect=error)
    return ApiKeyGate(store), store


@pytest.mark.asyncio
async def test_enabled_key_is_accepted():
    gate, store = _gate(ApiKey(key="k-1", name="app"))

    api_key = await gate.authorize("k-1")

    assert api_key.name == "app"
    store.find_by_key.assert_awaited_once_with("k-1")


@pytest.mark.asyncio
@pytest.mark.parametrize("key", [None, ""])
async def test_missing_key(key):
    gate, store = _gate()

    with pytest.raises(ParseError) as exc_info:
        await gate.authorize(key)

    assert (exc_info.value.code, exc_info.value.message, exc_info.value.data) == (-32700, "Key error", "No key")
    store.find_by_key.assert_not_awaited()


@pytest.mark.asyncio
async def test_store_failure():
    gate, _ = _gate(error=ConnectionError("db down"))

    with pytest.raises(ParseError) as exc_info:
        await gate.authorize("k-1")

    assert (exc_info.value.message, exc_info.value.data) == ("Database error", "Query apikey error")


@pytest.mark.asyncio
@pytest.mark.parametrize("stored", [None, ApiKey(key="k-1", enabled=False)])
async def test_unknown_or_disabled_key(stored):
    gate, _ = _gate(stored)

    with pytest.raises(ParseError) as exc_info:
        await gate.authorize("k-1")

    assert (exc_info.value.message, exc_info.value.data) == ("Key error", "Apikey error")
