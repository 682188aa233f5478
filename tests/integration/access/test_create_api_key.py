"""
Tests for the API key provisioning script against a throwaway SQLite database.
"""

import pytest

from create_api_key import provision_api_key
from src.infra.database import DatabaseManager
from src.infra.repository.api_key_repository import ApiKeyRepository


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'keys.db'}"


async def _find(database_url, key):
    manager = DatabaseManager(database_url)
    try:
        return await ApiKeyRepository(await manager.get_session_factory()).find_by_key(key)
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_provisions_random_key(database_url, capsys):
    api_key = await provision_api_key("wallet-app", database_url=database_url)

    stored = await _find(database_url, api_key.key)
    assert len(api_key.key) >= 32
    assert stored.name == "wallet-app"
    assert stored.enabled is True
    assert api_key.key in capsys.readouterr().out


@pytest.mark.asyncio
async def test_explicit_key_is_stored_once(database_url, capsys):
    first = await provision_api_key("first", key="k-fixed", database_url=database_url)
    second = await provision_api_key("second", key="k-fixed", database_url=database_url)

    assert first.key == second.key == "k-fixed"
    assert second.name == "first"
    assert "already exists" in capsys.readouterr().out
    assert (await _find(database_url, "k-fixed")).name == "first"
