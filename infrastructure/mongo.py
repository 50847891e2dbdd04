"""Async MongoDB connection and collection wiring."""

from __future__ import annotations

from typing import Optional

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from config import DatabaseSettings
from repositories.account_repository import AccountRepository
from repositories.token_repository import TokenRepository
from shared.logging import get_logger

log = get_logger(__name__)

ACCOUNTS_COLLECTION = "accounts"
TOKENS_COLLECTION = "tokens"


async def init_db(
    settings: DatabaseSettings, client: Optional[AsyncMongoClient] = None
) -> tuple[AsyncMongoClient, AsyncDatabase]:
    """Connect and return (client, database). Datetimes come back tz-aware."""
    client = client or AsyncMongoClient(settings.mongodb_uri, tz_aware=True)
    await client.aconnect()
    db = client[settings.db_name]
    log.info("mongo_connected", db_name=settings.db_name)
    return client, db


def build_repositories(db: AsyncDatabase) -> tuple[AccountRepository, TokenRepository]:
    return (
        AccountRepository(db[ACCOUNTS_COLLECTION]),
        TokenRepository(db[TOKENS_COLLECTION]),
    )


async def ensure_indexes(accounts: AccountRepository, tokens: TokenRepository) -> None:
    await accounts.ensure_indexes()
    await tokens.ensure_indexes()
    log.info("mongo_indexes_ensured")
