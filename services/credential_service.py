"""
Credential lifecycle service.

Drives registration, login, email verification, resend, password reset and
two-factor step-up. The branching of the three multi-step flows lives in
services/auth_flow.py as pure transitions; this module performs the side
effects each state asks for and runs the loop to a terminal state.

Failure policy:
- malformed input ends the flow before any store access
- lookups that could reveal whether an email is registered collapse to a
  generic outcome
- token problems are always "invalid or expired"
- a notifier failure after something was created or issued undoes it
  (account deleted, token revoked) before the terminal state is returned
- nothing is retried; callers re-invoke (e.g. resend) explicitly
"""

from __future__ import annotations

import asyncio
import secrets
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

from pydantic import ValidationError as PydanticValidationError

from config import AuthSettings
from errors import ConflictError
from infrastructure.email.protocol import (
    NotificationPayload,
    NotificationPurpose,
    Notifier,
)
from repositories.protocol import AccountStore
from schemas.dto.requests.auth import (
    NewPasswordRequest,
    PasswordResetRequest,
    error_messages,
)
from schemas.models.account import AUTH_METHOD_CREDENTIALS, ROLE_USER, AccountDoc
from schemas.models.token import TOKEN_TTL_MINUTES, TokenPurpose
from services.auth_flow import (
    AccountCreated,
    AccountNotFound,
    AlreadyVerified,
    FlowState,
    InputRejected,
    LoginMethodChecked,
    LoginReceived,
    LoginValidated,
    NotificationFailed,
    Outcome,
    PasswordResetCompleted,
    PasswordResetSent,
    RegistrationHashed,
    RegistrationReceived,
    RegistrationRollback,
    RegistrationUniquenessChecked,
    RegistrationValidated,
    RegistrationVerificationIssued,
    ResetNotAllowed,
    ResetTokenValid,
    SessionEstablished,
    SessionPending,
    TokenRejected,
    TwoFactorChallengeSent,
    TwoFactorNotEnabled,
    TwoFactorRequired,
    VerificationNotNeeded,
    VerificationRequired,
    VerificationSent,
    VerificationTokenMatched,
    VerificationTokenPresented,
    VerificationTokenWellFormed,
    advance_email_verification,
    advance_login,
    advance_registration,
)
from services.identity_service import IdentityService
from services.token_ledger import TokenLedger, VerificationResult, is_well_formed
from shared.crypto import CredentialHasher
from shared.datetime_utils import utc_now
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

Effect = Callable[[Any], Awaitable[Any]]

_NOTIFY_PURPOSE = {
    TokenPurpose.VERIFICATION: NotificationPurpose.VERIFICATION,
    TokenPurpose.PASSWORD_RESET: NotificationPurpose.PASSWORD_RESET,
    TokenPurpose.TWO_FACTOR: NotificationPurpose.TWO_FACTOR,
}

_LINK_PATHS = {
    TokenPurpose.VERIFICATION: "/auth/verify-email",
    TokenPurpose.PASSWORD_RESET: "/auth/reset",
}


class CredentialService:
    def __init__(
        self,
        accounts: AccountStore,
        ledger: TokenLedger,
        hasher: CredentialHasher,
        notifier: Notifier,
        identity: IdentityService,
        settings: AuthSettings,
    ) -> None:
        self._accounts = accounts
        self._ledger = ledger
        self._hasher = hasher
        self._notifier = notifier
        self._identity = identity
        self._settings = settings
        self._dummy_hash: Optional[str] = None

    # ── Driver ────────────────────────────────────────────────────────────

    async def _run(
        self,
        state: FlowState,
        advance: Callable[[FlowState, Any], FlowState],
        effects: dict[type, Effect],
    ) -> Outcome:
        while not state.terminal:
            effect = effects.get(type(state))
            event = await effect(state) if effect is not None else None
            state = advance(state, event)
        log.debug("flow_finished", outcome=type(state).__name__)
        return state

    # ── Password work ─────────────────────────────────────────────────────

    async def _hash_password(self, password: str) -> str:
        return await asyncio.to_thread(self._hasher.hash, password)

    async def _verify_password(self, password: str, stored: Optional[str]) -> bool:
        return await asyncio.to_thread(self._hasher.verify, password, stored)

    async def _burn_verify(self, password: str) -> None:
        """Spend one verify on a throwaway hash so an unknown email costs
        as much as a wrong password."""
        if self._dummy_hash is None:
            self._dummy_hash = await self._hash_password(secrets.token_hex(16))
        await self._verify_password(password, self._dummy_hash)

    # ── Challenge delivery ────────────────────────────────────────────────

    def _link_for(self, purpose: TokenPurpose, token: str) -> str:
        return f"{self._settings.app_url}{_LINK_PATHS[purpose]}?{urlencode({'token': token})}"

    async def _notify(self, account: AccountDoc, purpose: TokenPurpose, token: str) -> bool:
        if purpose is TokenPurpose.TWO_FACTOR:
            payload = NotificationPayload(
                name=account.name,
                code=token,
                expires_in_minutes=TOKEN_TTL_MINUTES[purpose],
            )
        else:
            payload = NotificationPayload(
                name=account.name,
                link=self._link_for(purpose, token),
                expires_in_minutes=TOKEN_TTL_MINUTES[purpose],
            )
        try:
            sent = await self._notifier.send(_NOTIFY_PURPOSE[purpose], account.email, payload)
        except Exception as e:
            log.error(
                "notification_error",
                account_id=str(account.id),
                purpose=purpose.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        if not sent:
            log.warning("notification_failed", account_id=str(account.id), purpose=purpose.value)
        return bool(sent)

    async def _issue_and_send(self, account: AccountDoc, purpose: TokenPurpose) -> bool:
        """Issue a token and deliver it; revoke it again if delivery fails."""
        token = await self._ledger.issue(purpose, account.id)
        if await self._notify(account, purpose, token):
            return True
        await self._ledger.revoke(token, account.id)
        return False

    # ── Registration ──────────────────────────────────────────────────────

    async def register(self, name: str, email: str, password: str) -> Outcome:
        async def lookup(state: RegistrationValidated) -> Optional[AccountDoc]:
            return await self._accounts.find_by_email(state.email)

        async def hash_password(state: RegistrationUniquenessChecked) -> str:
            return await self._hash_password(state.password)

        async def create(state: RegistrationHashed) -> Optional[AccountDoc]:
            account = AccountDoc(
                email=state.email,
                name=state.name,
                password_hash=state.password_hash,
                auth_methods=[AUTH_METHOD_CREDENTIALS],
                role=ROLE_USER,
                email_verified_at=None,
            )
            try:
                created = await self._accounts.insert(account)
            except ConflictError:
                return None
            log.info("account_registered", account_id=str(created.id))
            return created

        async def issue(state: AccountCreated) -> Optional[str]:
            try:
                return await self._ledger.issue(TokenPurpose.VERIFICATION, state.account.id)
            except Exception as e:
                log.error(
                    "verification_issue_failed",
                    account_id=str(state.account.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None

        async def notify(state: RegistrationVerificationIssued) -> bool:
            return await self._notify(state.account, TokenPurpose.VERIFICATION, state.token)

        async def rollback(state: RegistrationRollback) -> None:
            # The account goes first; a leftover token without an account is
            # rejected as orphaned anyway
            await self._accounts.delete(state.account.id)
            try:
                await self._ledger.purge(state.account.id, TokenPurpose.VERIFICATION)
            except Exception as e:
                log.error(
                    "verification_purge_failed",
                    account_id=str(state.account.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
            log.warning(
                "registration_rolled_back",
                account_id=str(state.account.id),
                reason=state.reason,
            )

        return await self._run(
            RegistrationReceived(name=name, email=email, password=password),
            advance_registration,
            {
                RegistrationValidated: lookup,
                RegistrationUniquenessChecked: hash_password,
                RegistrationHashed: create,
                AccountCreated: issue,
                RegistrationVerificationIssued: notify,
                RegistrationRollback: rollback,
            },
        )

    # ── Login ─────────────────────────────────────────────────────────────

    async def login(self, email: str, password: str) -> Outcome:
        async def lookup(state: LoginValidated) -> Optional[AccountDoc]:
            account = await self._accounts.find_by_email(state.email)
            if account is None:
                await self._burn_verify(state.password)
            return account

        async def check_password(state: LoginMethodChecked) -> bool:
            return await self._verify_password(state.password, state.account.password_hash)

        async def challenge(state: TwoFactorRequired) -> bool:
            return await self._issue_and_send(state.account, TokenPurpose.TWO_FACTOR)

        async def compose(state: SessionPending):
            return self._identity.local_claims(state.account)

        outcome = await self._run(
            LoginReceived(email=email, password=password),
            advance_login,
            {
                LoginValidated: lookup,
                LoginMethodChecked: check_password,
                TwoFactorRequired: challenge,
                SessionPending: compose,
            },
        )
        log.info("login_finished", outcome=type(outcome).__name__)
        return outcome

    # ── Email verification ────────────────────────────────────────────────

    async def verify_email(self, token: Any) -> Outcome:
        async def consume(state: VerificationTokenWellFormed) -> VerificationResult:
            return await self._ledger.consume(state.token, TokenPurpose.VERIFICATION)

        async def apply(state: VerificationTokenMatched) -> None:
            result = state.result
            try:
                await self._accounts.update(result.account.id, {"email_verified_at": utc_now()})
            except Exception:
                await self._reinstate(result)
                raise
            log.info("email_verified", account_id=str(result.account.id))

        return await self._run(
            VerificationTokenPresented(token=token),
            advance_email_verification,
            {
                VerificationTokenWellFormed: consume,
                VerificationTokenMatched: apply,
            },
        )

    async def _reinstate(self, result: VerificationResult) -> None:
        try:
            await self._ledger.reinstate(result)
        except Exception as e:
            log.error(
                "token_reinstate_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    async def resend_verification(self, email: str) -> Outcome:
        account = await self._accounts.find_by_email(normalize_email(email))
        if account is None:
            return AccountNotFound()
        if account.is_verified:
            return AlreadyVerified()
        if not account.has_credentials:
            return VerificationNotNeeded()

        if not await self._issue_and_send(account, TokenPurpose.VERIFICATION):
            return NotificationFailed(purpose=TokenPurpose.VERIFICATION.value)
        log.info("verification_resent", account_id=str(account.id))
        return VerificationSent(email=account.email)

    # ── Password reset ────────────────────────────────────────────────────

    async def request_password_reset(self, email: str) -> Outcome:
        """Send a reset link to a credentials account.

        Unknown and federated-only emails get the same PasswordResetSent
        outcome as real ones.
        """
        try:
            req = PasswordResetRequest(email=email)
        except PydanticValidationError as e:
            return InputRejected(errors=error_messages(e))

        account = await self._accounts.find_by_email(req.email)
        if account is None or not account.has_credentials:
            log.info("password_reset_requested", matched=False)
            return PasswordResetSent()

        if not await self._issue_and_send(account, TokenPurpose.PASSWORD_RESET):
            return NotificationFailed(purpose=TokenPurpose.PASSWORD_RESET.value)
        log.info("password_reset_requested", matched=True, account_id=str(account.id))
        return PasswordResetSent()

    async def validate_reset_token(self, token: Any) -> Outcome:
        result = await self._ledger.verify(token, TokenPurpose.PASSWORD_RESET)
        if not result.valid:
            return TokenRejected()
        if not result.account.has_credentials:
            return ResetNotAllowed()
        return ResetTokenValid()

    async def reset_password(self, token: Any, new_password: str) -> Outcome:
        try:
            req = NewPasswordRequest(token=token, password=new_password)
        except PydanticValidationError as e:
            return InputRejected(errors=error_messages(e))

        checked = await self._ledger.verify(req.token, TokenPurpose.PASSWORD_RESET)
        if not checked.valid:
            return TokenRejected()
        account = checked.account
        if not account.has_credentials:
            return ResetNotAllowed()

        password_hash = await self._hash_password(req.password)

        consumed = await self._ledger.consume(req.token, TokenPurpose.PASSWORD_RESET)
        if not consumed.valid or consumed.account.id != account.id:
            return TokenRejected()

        fields: dict = {"password_hash": password_hash}
        if not account.is_verified:
            # Following the emailed link proves ownership of the address
            fields["email_verified_at"] = utc_now()
        try:
            await self._accounts.update(account.id, fields)
        except Exception:
            await self._reinstate(consumed)
            raise
        log.info("password_reset_completed", account_id=str(account.id))
        return PasswordResetCompleted()

    # ── Two-factor ────────────────────────────────────────────────────────

    async def send_two_factor_code(self, email: str) -> Outcome:
        account = await self._accounts.find_by_email(normalize_email(email))
        if account is None or not account.has_credentials:
            return AccountNotFound()
        if not account.two_factor_enabled:
            return TwoFactorNotEnabled()

        if not await self._issue_and_send(account, TokenPurpose.TWO_FACTOR):
            return NotificationFailed(purpose=TokenPurpose.TWO_FACTOR.value)
        return TwoFactorChallengeSent(email=account.email)

    async def verify_two_factor_code(self, email: str, code: Any) -> Outcome:
        """Final gate before a session for two-factor accounts.

        The code must resolve to the same account the step-up was started
        for; a valid code of another account is rejected and left intact.
        """
        if not is_well_formed(code, TokenPurpose.TWO_FACTOR):
            return TokenRejected()

        account = await self._accounts.find_by_email(normalize_email(email))
        if account is None or not account.has_credentials:
            return TokenRejected()
        if not account.two_factor_enabled:
            return TwoFactorNotEnabled()

        checked = await self._ledger.verify(code, TokenPurpose.TWO_FACTOR, account.id)
        if not checked.valid or checked.account.id != account.id:
            log.warning("twofa_code_rejected", account_id=str(account.id))
            return TokenRejected()

        # Checked before consuming so the code survives until the email is verified
        if not account.is_verified:
            return VerificationRequired(email=account.email)

        consumed = await self._ledger.consume(code, TokenPurpose.TWO_FACTOR, account.id)
        if not consumed.valid or consumed.account.id != account.id:
            return TokenRejected()

        log.info("twofa_verified", account_id=str(account.id))
        return SessionEstablished(claims=self._identity.local_claims(account))
