"""
Session transport: signed JWT carrying the session claim set.

Policy: a session is valid for 24 hours from its last refresh and is
re-issued when it is more than 1 hour old (sliding window).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import jwt

from config import SessionSettings
from errors import AuthenticationError
from schemas.models.session import SessionClaims
from shared.datetime_utils import utc_now
from shared.logging import get_logger

log = get_logger(__name__)

_ALGORITHM = "HS256"


class SessionTokenCodec:
    def __init__(self, settings: SessionSettings) -> None:
        if not settings.session_secret:
            raise RuntimeError("SESSION_SECRET must be set")
        self._settings = settings

    @property
    def max_age(self) -> timedelta:
        return timedelta(seconds=self._settings.session_max_age_seconds)

    @property
    def update_age(self) -> timedelta:
        return timedelta(seconds=self._settings.session_update_age_seconds)

    def issue(self, claims: SessionClaims, now: Optional[datetime] = None) -> str:
        now = now or utc_now()
        payload = {
            "iss": self._settings.session_issuer,
            "aud": self._settings.session_audience,
            "sub": claims.account_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.max_age).timestamp()),
            "role": claims.role,
            "email_verified_at": (
                claims.email_verified_at.isoformat() if claims.email_verified_at else None
            ),
            "amr": [claims.auth_method],
        }
        return jwt.encode(payload, self._settings.session_secret, algorithm=_ALGORITHM)

    def _decode_raw(self, session: str, now: Optional[datetime] = None) -> dict:
        # exp is checked against the caller's clock, not the library's
        now = now or utc_now()
        try:
            raw = jwt.decode(
                session,
                self._settings.session_secret,
                algorithms=[_ALGORITHM],
                audience=self._settings.session_audience,
                issuer=self._settings.session_issuer,
                options={"require": ["exp", "iat", "sub"], "verify_exp": False},
            )
        except jwt.InvalidTokenError as e:
            log.info("session_rejected", error_type=type(e).__name__)
            raise AuthenticationError("Session is invalid or expired") from e

        if raw["exp"] <= int(now.timestamp()):
            log.info("session_rejected", error_type="ExpiredSignatureError")
            raise AuthenticationError("Session is invalid or expired")
        return raw

    def decode(self, session: str, now: Optional[datetime] = None) -> SessionClaims:
        """Return the claims of a live session.

        Raises:
            AuthenticationError: bad signature, wrong audience/issuer, expired.
        """
        raw = self._decode_raw(session, now)
        amr = raw.get("amr") or ["credentials"]
        return SessionClaims(
            account_id=raw["sub"],
            role=raw.get("role", "user"),
            email_verified_at=raw.get("email_verified_at"),
            auth_method=amr[0],
        )

    def refresh(self, session: str, now: Optional[datetime] = None) -> str:
        """Re-issue *session* if it is older than the update age.

        Returns the same string when no refresh is due.
        """
        now = now or utc_now()
        raw = self._decode_raw(session, now)
        age = now.timestamp() - raw["iat"]
        if age <= self.update_age.total_seconds():
            return session
        log.info("session_refreshed", account_id=raw["sub"])
        return self.issue(self.decode(session, now), now=now)
