"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests. Tests control config exclusively through monkeypatch.setenv()
or explicit keyword arguments.

Also provides in-memory account/token stores, a recording notifier and a
controllable clock so service tests run without MongoDB or a mail API.
"""

from __future__ import annotations

import copy
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

import pytest
from bson import ObjectId

from config import AuthSettings
from errors import ConflictError
from schemas.models.account import AccountDoc
from schemas.models.base import as_object_id
from schemas.models.token import TokenDoc, TokenPurpose
from services.credential_service import CredentialService
from services.identity_service import IdentityService
from services.token_ledger import TokenLedger
from shared.crypto import CredentialHasher
from shared.datetime_utils import ensure_utc, utc_now
from shared.validators import normalize_email

DEFAULT_PASSWORD = "secret1"


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


# ── Fakes ─────────────────────────────────────────────────────────────────────


class StoreDown(RuntimeError):
    pass


class InMemoryAccountStore:
    def __init__(self) -> None:
        self.docs: dict[ObjectId, dict] = {}
        self.fail_on: set[str] = set()

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise StoreDown(f"{op} failed")

    async def get_by_id(self, account_id: Any) -> Optional[AccountDoc]:
        self._maybe_fail("get_by_id")
        return AccountDoc.from_mongo(copy.deepcopy(self.docs.get(as_object_id(account_id))))

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        self._maybe_fail("find_by_email")
        email = normalize_email(email)
        for doc in self.docs.values():
            if doc["email"] == email:
                return AccountDoc.from_mongo(copy.deepcopy(doc))
        return None

    async def insert(self, account: AccountDoc) -> AccountDoc:
        self._maybe_fail("insert")
        if any(d["email"] == account.email for d in self.docs.values()):
            raise ConflictError("An account with this email already exists", field="email")
        data = account.to_mongo()
        data["_id"] = ObjectId()
        self.docs[data["_id"]] = data
        return AccountDoc.from_mongo(copy.deepcopy(data))

    async def update(
        self, account_id: Any, fields: dict, *, add_methods: Iterable[str] = ()
    ) -> bool:
        self._maybe_fail("update")
        doc = self.docs.get(as_object_id(account_id))
        if doc is None:
            return False
        doc.update(fields)
        for method in add_methods:
            if method not in doc["auth_methods"]:
                doc["auth_methods"].append(method)
        return True

    async def delete(self, account_id: Any) -> bool:
        self._maybe_fail("delete")
        return self.docs.pop(as_object_id(account_id), None) is not None

    def by_email(self, email: str) -> Optional[dict]:
        for doc in self.docs.values():
            if doc["email"] == email:
                return doc
        return None


class InMemoryTokenStore:
    def __init__(self) -> None:
        self.docs: list[dict] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise StoreDown(f"{op} failed")

    async def replace_for_user(self, token: TokenDoc) -> None:
        self._maybe_fail("replace_for_user")
        self.docs = [
            d
            for d in self.docs
            if not (d["user_id"] == token.user_id and d["token_type"] == token.token_type.value)
        ]
        data = token.to_mongo()
        data["_id"] = ObjectId()
        self.docs.append(data)

    async def insert(self, token: TokenDoc) -> None:
        self._maybe_fail("insert")
        self.docs.append(token.to_mongo())

    async def delete_for_user(self, user_id: Any, purpose: TokenPurpose) -> int:
        self._maybe_fail("delete_for_user")
        before = len(self.docs)
        uid = as_object_id(user_id)
        self.docs = [
            d for d in self.docs if not (d["user_id"] == uid and d["token_type"] == purpose.value)
        ]
        return before - len(self.docs)

    async def delete_by_hash(self, token_hash: str, user_id: Any = None) -> bool:
        for i, d in enumerate(self.docs):
            if d["token_hash"] == token_hash and (
                user_id is None or d["user_id"] == as_object_id(user_id)
            ):
                del self.docs[i]
                return True
        return False

    def _match(
        self, token_hash: str, purpose: TokenPurpose, now: datetime, user_id: Any = None
    ) -> Optional[dict]:
        for d in self.docs:
            if (
                d["token_hash"] == token_hash
                and d["token_type"] == purpose.value
                and ensure_utc(d["expires_at"]) > now
                and (user_id is None or d["user_id"] == as_object_id(user_id))
            ):
                return d
        return None

    async def find_live(self, token_hash, purpose, now, user_id=None) -> Optional[TokenDoc]:
        self._maybe_fail("find_live")
        doc = self._match(token_hash, purpose, now, user_id)
        return TokenDoc.from_mongo(copy.deepcopy(doc))

    async def take_live(self, token_hash, purpose, now, user_id=None) -> Optional[TokenDoc]:
        self._maybe_fail("take_live")
        doc = self._match(token_hash, purpose, now, user_id)
        if doc is not None:
            self.docs.remove(doc)
        return TokenDoc.from_mongo(doc)

    def for_user(self, user_id: Any, purpose: Optional[TokenPurpose] = None) -> list[dict]:
        uid = as_object_id(user_id)
        return [
            d
            for d in self.docs
            if d["user_id"] == uid and (purpose is None or d["token_type"] == purpose.value)
        ]


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple] = []
        self.result = True

    async def send(self, purpose, recipient, payload) -> bool:
        self.sent.append((purpose, recipient, payload))
        return self.result

    @property
    def last(self):
        return self.sent[-1]


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    return CredentialHasher()


@pytest.fixture(scope="session")
def default_password_hash(hasher) -> str:
    return hasher.hash(DEFAULT_PASSWORD)


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def tokens() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(app_url="https://id.example.com/", oauth_providers=("google", "github"))


@pytest.fixture
def ledger(tokens, accounts, clock) -> TokenLedger:
    return TokenLedger(tokens, accounts, clock=clock)


@pytest.fixture
def identity(accounts, auth_settings, clock) -> IdentityService:
    return IdentityService(accounts, auth_settings, clock=clock)


@pytest.fixture
def service(accounts, ledger, hasher, notifier, identity, auth_settings) -> CredentialService:
    return CredentialService(
        accounts=accounts,
        ledger=ledger,
        hasher=hasher,
        notifier=notifier,
        identity=identity,
        settings=auth_settings,
    )


@pytest.fixture
def make_account(accounts, default_password_hash):
    """Factory inserting an account straight into the in-memory store.

    Local accounts get the hash of DEFAULT_PASSWORD.
    """

    async def _make(
        email: str = "a@x.com",
        *,
        methods: tuple[str, ...] = ("credentials",),
        verified: bool = True,
        two_factor: bool = False,
        **fields,
    ) -> AccountDoc:
        data = dict(
            email=email,
            auth_methods=list(methods),
            password_hash=default_password_hash if "credentials" in methods else None,
            email_verified_at=utc_now() - timedelta(days=1) if verified else None,
            two_factor_enabled=two_factor,
        )
        data.update(fields)
        return await accounts.insert(AccountDoc(**data))

    return _make
