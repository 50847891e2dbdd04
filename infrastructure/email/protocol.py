"""Notifier protocol: services depend on this, not the concrete implementation."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict


class NotificationPurpose(str, Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password-reset"
    TWO_FACTOR = "two-factor"


class NotificationPayload(BaseModel):
    """What the message has to carry: a code to type in, or a link to follow."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    code: Optional[str] = None
    link: Optional[str] = None
    expires_in_minutes: Optional[int] = None


class Notifier(Protocol):
    async def send(
        self,
        purpose: NotificationPurpose,
        recipient: str,
        payload: NotificationPayload,
    ) -> bool:
        """Deliver one message. Returns False on any failure; never retries."""
        ...
