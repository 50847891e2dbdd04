"""
Token ledger: issuance, shape checks, verification and revocation of
single-use secrets.

Values by purpose:
- verification, password_reset: 64 lowercase hex chars (32 random bytes)
- two_factor: 6 decimal digits, uniform over [100000, 999999]

Only SHA-256(value) is stored. Lookups match hash + purpose + unexpired,
narrowed to one account when the caller already knows which one (6-digit
codes of different accounts can collide). Every miss is reported with the same reason so callers cannot tell an
unknown token from an expired one.

Brute-force resistance for the 6-digit codes comes from the 10 minute
expiry and single use only; attempt rate limiting is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from repositories.protocol import AccountStore, TokenStore
from schemas.models.account import AccountDoc
from schemas.models.base import as_object_id
from schemas.models.token import TOKEN_TTL_MINUTES, TokenDoc, TokenPurpose
from shared.crypto import hash_token
from shared.datetime_utils import expiry_from, utc_now
from shared.generators import generate_otp_code, generate_secure_token
from shared.logging import get_logger
from shared.validators import is_hex_token, is_numeric_code

log = get_logger(__name__)

REASON_INVALID_OR_EXPIRED = "invalid_or_expired"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    account: Optional[AccountDoc] = None
    reason: Optional[str] = None
    # Set by consume() so a failed follow-up write can reinstate the token
    record: Optional[TokenDoc] = None

    @classmethod
    def rejected(cls) -> "VerificationResult":
        return cls(valid=False, reason=REASON_INVALID_OR_EXPIRED)


def is_well_formed(value: Any, purpose: Optional[TokenPurpose] = None) -> bool:
    """Purely syntactic check of a presented token value.

    Two-factor codes must be exactly 6 ASCII digits; every other purpose
    (and no purpose at all) requires exactly 64 lowercase hex characters.
    """
    if purpose is TokenPurpose.TWO_FACTOR:
        return is_numeric_code(value)
    return is_hex_token(value)


def generate_value(purpose: TokenPurpose) -> str:
    if purpose is TokenPurpose.TWO_FACTOR:
        return generate_otp_code()
    return generate_secure_token(32)


class TokenLedger:
    def __init__(
        self,
        tokens: TokenStore,
        accounts: AccountStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tokens = tokens
        self._accounts = accounts
        self._clock = clock

    is_well_formed = staticmethod(is_well_formed)

    def expiry_for(self, purpose: TokenPurpose) -> datetime:
        return expiry_from(self._clock(), TOKEN_TTL_MINUTES[purpose])

    async def issue(self, purpose: TokenPurpose, account_id: Any) -> str:
        """Issue a fresh token for (account, purpose), superseding any previous one.

        The purge and insert are one store call; if it raises, nothing was
        issued and the exception propagates.
        """
        value = generate_value(purpose)
        now = self._clock()
        token = TokenDoc(
            user_id=as_object_id(account_id),
            token_type=purpose,
            token_hash=hash_token(value),
            expires_at=expiry_from(now, TOKEN_TTL_MINUTES[purpose]),
            created_at=now,
        )
        await self._tokens.replace_for_user(token)
        log.info(
            "token_issued",
            account_id=str(account_id),
            purpose=purpose.value,
            expires_at=token.expires_at.isoformat(),
        )
        return value

    async def _resolve(self, record: Optional[TokenDoc]) -> VerificationResult:
        if record is None:
            return VerificationResult.rejected()
        account = await self._accounts.get_by_id(record.user_id)
        if account is None:
            log.warning("token_orphaned", account_id=str(record.user_id))
            return VerificationResult.rejected()
        return VerificationResult(valid=True, account=account, record=record)

    async def verify(
        self, value: Any, purpose: TokenPurpose, account_id: Any = None
    ) -> VerificationResult:
        """Check *value* without consuming it.

        Malformed values are rejected before any store access. With
        *account_id* only that account's token can match.
        """
        if not is_well_formed(value, purpose):
            return VerificationResult.rejected()
        record = await self._tokens.find_live(
            hash_token(value), purpose, self._clock(), user_id=account_id
        )
        result = await self._resolve(record)
        # verify() never hands out a record to reinstate
        if result.valid:
            return VerificationResult(valid=True, account=result.account)
        log.info("token_rejected", purpose=purpose.value)
        return result

    async def consume(
        self, value: Any, purpose: TokenPurpose, account_id: Any = None
    ) -> VerificationResult:
        """Verify and delete *value* in one atomic store operation.

        Of two concurrent consumers of the same value at most one succeeds.
        """
        if not is_well_formed(value, purpose):
            return VerificationResult.rejected()
        record = await self._tokens.take_live(
            hash_token(value), purpose, self._clock(), user_id=account_id
        )
        result = await self._resolve(record)
        if result.valid:
            log.info(
                "token_consumed",
                account_id=str(record.user_id),
                purpose=purpose.value,
            )
        else:
            log.info("token_rejected", purpose=purpose.value)
        return result

    async def reinstate(self, result: VerificationResult) -> None:
        """Put back a token taken by consume() whose follow-up write failed."""
        if result.record is None:
            return
        await self._tokens.insert(result.record)
        log.warning(
            "token_reinstated",
            account_id=str(result.record.user_id),
            purpose=result.record.token_type.value,
        )

    async def revoke(self, value: Any, account_id: Any = None) -> None:
        """Delete the token with this value, scoped to *account_id* when given.

        Unknown or malformed values are a no-op.
        """
        if not isinstance(value, str) or not (is_hex_token(value) or is_numeric_code(value)):
            return
        await self._tokens.delete_by_hash(hash_token(value), user_id=account_id)

    async def purge(self, account_id: Any, purpose: TokenPurpose) -> int:
        return await self._tokens.delete_for_user(account_id, purpose)
