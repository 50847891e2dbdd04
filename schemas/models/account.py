"""
Account document model.

Maps to the `accounts` MongoDB collection.

Two creation paths produce slightly different shapes:
- Password registration: password_hash set, auth_methods == ["credentials"],
  email_verified_at None until the verification link is followed
- Federated sign-in: no password_hash, auth_methods == [<provider>],
  email_verified_at set at creation

auth_methods is a set stored as an array; writes go through $addToSet so it
never holds duplicates.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import field_validator

from schemas.models.base import MongoBaseModel
from shared.datetime_utils import ensure_utc
from shared.validators import normalize_email

AUTH_METHOD_CREDENTIALS = "credentials"

ROLE_USER = "user"
ROLE_ADMIN = "admin"

# Placeholder some older records carry instead of a missing image
NO_IMAGE_PLACEHOLDER = "none"


class AccountDoc(MongoBaseModel):
    """Document model for the `accounts` collection."""

    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    password_hash: Optional[str] = None
    auth_methods: list[str] = []
    email_verified_at: Optional[datetime] = None
    two_factor_enabled: bool = False
    role: str = ROLE_USER
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("auth_methods")
    @classmethod
    def _dedupe_methods(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @field_validator("role")
    @classmethod
    def _lower_role(cls, v: str) -> str:
        return v.lower()

    @field_validator("email_verified_at", "created_at", "updated_at")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def has_credentials(self) -> bool:
        return AUTH_METHOD_CREDENTIALS in self.auth_methods

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None

    @property
    def has_image(self) -> bool:
        return bool(self.image) and self.image != NO_IMAGE_PLACEHOLDER
