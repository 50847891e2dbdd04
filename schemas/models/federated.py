"""
Normalised identity reported by a federated provider after a successful
OAuth handshake. Produced by infrastructure/oauth_clients.py, consumed by
IdentityService.sign_in_federated().
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from shared.validators import normalize_email


class FederatedProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    provider_user_id: str = ""
    email: str = ""
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None

    @field_validator("provider")
    @classmethod
    def _lower_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("name", "picture")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v
