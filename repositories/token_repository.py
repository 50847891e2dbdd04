"""MongoDB adapter for the `tokens` collection.

The unique (user_id, token_type) index is what makes the at-most-one-live
token invariant hold under racing issuance: replace_for_user is a single
upsert keyed on that pair, so two concurrent issues end with one document
(the later write), or the loser gets a DuplicateKeyError and no token.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection

from schemas.models.base import as_object_id
from schemas.models.token import TokenDoc, TokenPurpose


class TokenRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("user_id", ASCENDING), ("token_type", ASCENDING)], unique=True
        )
        await self._col.create_index([("token_hash", ASCENDING)])

    @staticmethod
    def _live_filter(
        token_hash: str, purpose: TokenPurpose, now: datetime, user_id: Any = None
    ) -> dict:
        query = {
            "token_hash": token_hash,
            "token_type": purpose.value,
            "expires_at": {"$gt": now},
        }
        if user_id is not None:
            query["user_id"] = as_object_id(user_id)
        return query

    async def replace_for_user(self, token: TokenDoc) -> None:
        data = token.to_mongo()
        data.pop("_id", None)
        await self._col.replace_one(
            {"user_id": token.user_id, "token_type": token.token_type.value},
            data,
            upsert=True,
        )

    async def insert(self, token: TokenDoc) -> None:
        await self._col.insert_one(token.to_mongo())

    async def delete_for_user(self, user_id: Any, purpose: TokenPurpose) -> int:
        result = await self._col.delete_many(
            {"user_id": as_object_id(user_id), "token_type": purpose.value}
        )
        return result.deleted_count

    async def delete_by_hash(self, token_hash: str, user_id: Any = None) -> bool:
        query: dict = {"token_hash": token_hash}
        if user_id is not None:
            query["user_id"] = as_object_id(user_id)
        result = await self._col.delete_one(query)
        return result.deleted_count > 0

    async def find_live(
        self,
        token_hash: str,
        purpose: TokenPurpose,
        now: datetime,
        user_id: Any = None,
    ) -> Optional[TokenDoc]:
        doc = await self._col.find_one(self._live_filter(token_hash, purpose, now, user_id))
        return TokenDoc.from_mongo(doc)

    async def take_live(
        self,
        token_hash: str,
        purpose: TokenPurpose,
        now: datetime,
        user_id: Any = None,
    ) -> Optional[TokenDoc]:
        doc = await self._col.find_one_and_delete(
            self._live_filter(token_hash, purpose, now, user_id)
        )
        return TokenDoc.from_mongo(doc)
