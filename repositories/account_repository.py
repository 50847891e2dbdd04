"""MongoDB adapter for the `accounts` collection."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError

from errors import ConflictError
from schemas.models.account import AccountDoc
from schemas.models.base import as_object_id
from shared.datetime_utils import utc_now
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)


class AccountRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)

    async def get_by_id(self, account_id: Any) -> Optional[AccountDoc]:
        doc = await self._col.find_one({"_id": as_object_id(account_id)})
        return AccountDoc.from_mongo(doc)

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        doc = await self._col.find_one({"email": normalize_email(email)})
        return AccountDoc.from_mongo(doc)

    async def insert(self, account: AccountDoc) -> AccountDoc:
        now = utc_now()
        data = account.to_mongo()
        data["created_at"] = data.get("created_at") or now
        data["updated_at"] = now
        try:
            result = await self._col.insert_one(data)
        except DuplicateKeyError as e:
            log.info("account_insert_conflict", email_domain=account.email.split("@")[-1])
            raise ConflictError("An account with this email already exists", field="email") from e
        data["_id"] = result.inserted_id
        return AccountDoc.from_mongo(data)

    async def update(
        self,
        account_id: Any,
        fields: dict,
        *,
        add_methods: Iterable[str] = (),
    ) -> bool:
        """Apply a partial `$set` and optionally union methods into auth_methods.

        Returns True when the account exists.
        """
        ops: dict = {"$set": {**fields, "updated_at": utc_now()}}
        methods = list(dict.fromkeys(add_methods))
        if methods:
            ops["$addToSet"] = {"auth_methods": {"$each": methods}}
        result = await self._col.update_one({"_id": as_object_id(account_id)}, ops)
        return result.matched_count > 0

    async def delete(self, account_id: Any) -> bool:
        result = await self._col.delete_one({"_id": as_object_id(account_id)})
        return result.deleted_count > 0
