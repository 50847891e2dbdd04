"""Store protocols: services depend on these, not on MongoDB."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from schemas.models.account import AccountDoc
from schemas.models.token import TokenDoc, TokenPurpose


class AccountStore(Protocol):
    async def get_by_id(self, account_id: Any) -> Optional[AccountDoc]: ...

    async def find_by_email(self, email: str) -> Optional[AccountDoc]: ...

    async def insert(self, account: AccountDoc) -> AccountDoc:
        """Insert and return the account with its id set.

        Raises ConflictError when the email is already taken.
        """
        ...

    async def update(
        self,
        account_id: Any,
        fields: dict,
        *,
        add_methods: Iterable[str] = (),
    ) -> bool: ...

    async def delete(self, account_id: Any) -> bool: ...


class TokenStore(Protocol):
    async def replace_for_user(self, token: TokenDoc) -> None:
        """Remove every token of token.token_type for token.user_id and
        insert *token*, as one atomic operation."""
        ...

    async def insert(self, token: TokenDoc) -> None: ...

    async def delete_for_user(self, user_id: Any, purpose: TokenPurpose) -> int: ...

    async def delete_by_hash(self, token_hash: str, user_id: Any = None) -> bool: ...

    async def find_live(
        self,
        token_hash: str,
        purpose: TokenPurpose,
        now: datetime,
        user_id: Any = None,
    ) -> Optional[TokenDoc]:
        """Unexpired token with this hash and purpose, of *user_id* when given."""
        ...

    async def take_live(
        self,
        token_hash: str,
        purpose: TokenPurpose,
        now: datetime,
        user_id: Any = None,
    ) -> Optional[TokenDoc]:
        """find_live + delete in one atomic operation."""
        ...
