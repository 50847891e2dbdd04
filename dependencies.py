"""
Service wiring and FastAPI dependency providers.

build_services() assembles the core from settings, a database handle and a
notifier. The presentation layer stores the result on app.state.services
and pulls individual services out with the get_* providers below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request

from config import AppSettings
from infrastructure.email.protocol import Notifier
from infrastructure.mongo import build_repositories
from infrastructure.session_tokens import SessionTokenCodec
from repositories.account_repository import AccountRepository
from repositories.token_repository import TokenRepository
from services.credential_service import CredentialService
from services.identity_service import IdentityService
from services.token_ledger import TokenLedger
from shared.crypto import CredentialHasher


@dataclass(frozen=True)
class Services:
    accounts: AccountRepository
    tokens: TokenRepository
    ledger: TokenLedger
    identity: IdentityService
    credentials: CredentialService
    sessions: SessionTokenCodec


def build_services(settings: AppSettings, db: Any, notifier: Notifier) -> Services:
    accounts, tokens = build_repositories(db)
    ledger = TokenLedger(tokens, accounts)
    identity = IdentityService(accounts, settings.auth)
    credentials = CredentialService(
        accounts=accounts,
        ledger=ledger,
        hasher=CredentialHasher.from_settings(settings.hasher),
        notifier=notifier,
        identity=identity,
        settings=settings.auth,
    )
    return Services(
        accounts=accounts,
        tokens=tokens,
        ledger=ledger,
        identity=identity,
        credentials=credentials,
        sessions=SessionTokenCodec(settings.session),
    )


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_credential_service(request: Request) -> CredentialService:
    return request.app.state.services.credentials


def get_identity_service(request: Request) -> IdentityService:
    return request.app.state.services.identity


def get_session_codec(request: Request) -> SessionTokenCodec:
    return request.app.state.services.sessions
