"""
Session claim set.

Derived view of an account produced at sign-in; never persisted by the
core. The session transport carries it between requests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SessionClaims(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    role: str
    email_verified_at: Optional[datetime] = None
    # "credentials" or the federated provider key
    auth_method: str
