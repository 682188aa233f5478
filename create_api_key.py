#!/usr/bin/env python3
"""Provision an API key for the JSON-RPC endpoint."""

import argparse
import asyncio
import secrets
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from src.core.service.access.models import ApiKey
from src.infra.database import DatabaseManager
from src.infra.repository.api_key_repository import ApiKeyRepository


async def provision_api_key(
    name: str,
    key: Optional[str] = None,
    database_url: Optional[str] = None
) -> ApiKey:
    """Store a key (random when none is given); an existing key is returned unchanged."""
    manager = DatabaseManager(database_url)
    try:
        await manager.create_tables()
        repository = ApiKeyRepository(await manager.get_session_factory())

        if key is not None:
            existing = await repository.find_by_key(key)
            if existing:
                print(f"API key already exists: {existing.key}")
                return existing

        api_key = await repository.create(key or secrets.token_urlsafe(24), name=name)
        print(f"API key created: {api_key.key}")
        print(f"Endpoint: POST /{api_key.key}")
        return api_key
    finally:
        await manager.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("name", help="label stored with the key")
    parser.add_argument("--key", help="use this key instead of a random one")
    parser.add_argument("--database-url", help="defaults to DATABASE_URL from the environment")
    args = parser.parse_args()

    asyncio.run(provision_api_key(args.name, key=args.key, database_url=args.database_url))


if __name__ == "__main__":
    main()
