"""
Single-use token document model.

Maps to the `tokens` MongoDB collection.

Used for email verification links, password reset links and two-factor
codes. token_hash stores SHA-256(value); the plain value is never stored.
At most one document exists per (user_id, token_type).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import field_validator

from schemas.models.base import MongoBaseModel, PyObjectId
from shared.datetime_utils import ensure_utc


class TokenPurpose(str, Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR = "two_factor"


# Lifetime in minutes per purpose
TOKEN_TTL_MINUTES: dict[TokenPurpose, int] = {
    TokenPurpose.PASSWORD_RESET: 60,
    TokenPurpose.VERIFICATION: 24 * 60,
    TokenPurpose.TWO_FACTOR: 10,
}


class TokenDoc(MongoBaseModel):
    """Document model for the `tokens` collection."""

    user_id: PyObjectId
    token_type: TokenPurpose
    token_hash: str
    expires_at: datetime
    created_at: Optional[datetime] = None

    @field_validator("expires_at", "created_at")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        data["token_type"] = self.token_type.value
        return data
