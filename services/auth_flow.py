"""
Authentication flow states and their pure transition functions.

Each flow is a chain of frozen dataclass states. A non-terminal state names
the side effect it needs (a store read, a hash, a send); CredentialService
performs that effect and feeds the result back as `event` into the flow's
advance_* function, which decides the next state without touching I/O.

    state = LoginReceived(email, password)
    while not state.terminal:
        state = advance_login(state, await effect(state))

Terminal states carry `success` and a stable `code` the presentation layer
maps to copy. Codes are deliberately coarse where a finer answer would
reveal whether an account exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from pydantic import ValidationError as PydanticValidationError

from schemas.dto.requests.auth import LoginRequest, RegisterRequest, error_messages
from schemas.models.account import AccountDoc
from schemas.models.session import SessionClaims
from schemas.models.token import TokenPurpose
from services.token_ledger import VerificationResult, is_well_formed


@dataclass(frozen=True)
class FlowState:
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class Outcome(FlowState):
    terminal: ClassVar[bool] = True
    success: ClassVar[bool] = False
    code: ClassVar[str] = "failed"


# ── Shared terminal outcomes ─────────────────────────────────────────────────


@dataclass(frozen=True)
class InputRejected(Outcome):
    code: ClassVar[str] = "invalid_data"
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class InvalidCredentials(Outcome):
    code: ClassVar[str] = "invalid_email_password"


@dataclass(frozen=True)
class WrongMethod(Outcome):
    code: ClassVar[str] = "account_registered_via"
    methods: tuple[str, ...] = ()


@dataclass(frozen=True)
class VerificationRequired(Outcome):
    code: ClassVar[str] = "verification_required"
    email: str = ""


@dataclass(frozen=True)
class TokenRejected(Outcome):
    code: ClassVar[str] = "invalid_expired_token"


@dataclass(frozen=True)
class NotificationFailed(Outcome):
    code: ClassVar[str] = "notification_failed"
    purpose: str = ""


@dataclass(frozen=True)
class AccountNotFound(Outcome):
    code: ClassVar[str] = "user_not_found"


@dataclass(frozen=True)
class AlreadyVerified(Outcome):
    code: ClassVar[str] = "email_already_verified"


@dataclass(frozen=True)
class VerificationNotNeeded(Outcome):
    code: ClassVar[str] = "account_no_verification_needed"


@dataclass(frozen=True)
class TwoFactorNotEnabled(Outcome):
    code: ClassVar[str] = "twofa_not_enabled"


@dataclass(frozen=True)
class ResetNotAllowed(Outcome):
    code: ClassVar[str] = "account_cannot_reset"


@dataclass(frozen=True)
class VerificationSent(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "verification_sent"
    email: str = ""


@dataclass(frozen=True)
class TwoFactorChallengeSent(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "twofa_code_sent"
    email: str = ""


@dataclass(frozen=True)
class SessionEstablished(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "login_successful"
    claims: Optional[SessionClaims] = None


@dataclass(frozen=True)
class EmailVerified(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "email_verified_success"
    account_id: str = ""


@dataclass(frozen=True)
class PasswordResetSent(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "reset_email_sent"


@dataclass(frozen=True)
class ResetTokenValid(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "token_valid"


@dataclass(frozen=True)
class PasswordResetCompleted(Outcome):
    success: ClassVar[bool] = True
    code: ClassVar[str] = "password_reset_success"


# ── Login ─────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LoginReceived(FlowState):
    email: str
    password: str


@dataclass(frozen=True)
class LoginValidated(FlowState):
    """Effect: look the account up by email. Event: AccountDoc | None."""

    email: str
    password: str


@dataclass(frozen=True)
class LoginAccountFound(FlowState):
    account: AccountDoc
    password: str


@dataclass(frozen=True)
class LoginMethodChecked(FlowState):
    """Effect: verify the password against the stored hash. Event: bool."""

    account: AccountDoc
    password: str


@dataclass(frozen=True)
class LoginPasswordVerified(FlowState):
    account: AccountDoc


@dataclass(frozen=True)
class LoginEmailVerified(FlowState):
    account: AccountDoc


@dataclass(frozen=True)
class TwoFactorRequired(FlowState):
    """Effect: issue and send a two-factor code. Event: bool (sent)."""

    account: AccountDoc


@dataclass(frozen=True)
class SessionPending(FlowState):
    """Effect: compose session claims. Event: SessionClaims."""

    account: AccountDoc


def advance_login(state: FlowState, event: Any = None) -> FlowState:
    if isinstance(state, LoginReceived):
        try:
            req = LoginRequest(email=state.email, password=state.password)
        except PydanticValidationError as e:
            return InputRejected(errors=error_messages(e))
        return LoginValidated(email=req.email, password=req.password)

    if isinstance(state, LoginValidated):
        if event is None:
            return InvalidCredentials()
        return LoginAccountFound(account=event, password=state.password)

    if isinstance(state, LoginAccountFound):
        if not state.account.has_credentials:
            return WrongMethod(methods=tuple(sorted(state.account.auth_methods)))
        return LoginMethodChecked(account=state.account, password=state.password)

    if isinstance(state, LoginMethodChecked):
        if not event:
            return InvalidCredentials()
        return LoginPasswordVerified(account=state.account)

    if isinstance(state, LoginPasswordVerified):
        if not state.account.is_verified:
            return VerificationRequired(email=state.account.email)
        return LoginEmailVerified(account=state.account)

    if isinstance(state, LoginEmailVerified):
        if state.account.two_factor_enabled:
            return TwoFactorRequired(account=state.account)
        return SessionPending(account=state.account)

    if isinstance(state, TwoFactorRequired):
        if event:
            return TwoFactorChallengeSent(email=state.account.email)
        return NotificationFailed(purpose=TokenPurpose.TWO_FACTOR.value)

    if isinstance(state, SessionPending):
        return SessionEstablished(claims=event)

    raise ValueError(f"advance_login: unexpected state {type(state).__name__}")


# ── Registration ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AccountExists(Outcome):
    methods: tuple[str, ...] = ()

    @property
    def code(self) -> str:  # type: ignore[override]
        if "credentials" in self.methods or not self.methods:
            return "account_exists_credentials"
        return "account_exists_oauth"


@dataclass(frozen=True)
class RegistrationFailed(Outcome):
    code: ClassVar[str] = "registration_failed"
    reason: str = ""


@dataclass(frozen=True)
class RegistrationReceived(FlowState):
    name: str
    email: str
    password: str


@dataclass(frozen=True)
class RegistrationValidated(FlowState):
    """Effect: look the email up. Event: AccountDoc | None."""

    name: str
    email: str
    password: str


@dataclass(frozen=True)
class RegistrationUniquenessChecked(FlowState):
    """Effect: hash the password. Event: str (stored hash)."""

    name: str
    email: str
    password: str


@dataclass(frozen=True)
class RegistrationHashed(FlowState):
    """Effect: insert the account. Event: AccountDoc, or None on an email conflict."""

    name: str
    email: str
    password_hash: str


@dataclass(frozen=True)
class AccountCreated(FlowState):
    """Effect: issue a verification token. Event: str, or None if issuing failed."""

    account: AccountDoc


@dataclass(frozen=True)
class RegistrationVerificationIssued(FlowState):
    """Effect: send the verification link. Event: bool (sent)."""

    account: AccountDoc
    token: str


@dataclass(frozen=True)
class RegistrationRollback(FlowState):
    """Effect: delete the account and its tokens. Event ignored."""

    account: AccountDoc
    reason: str


def advance_registration(state: FlowState, event: Any = None) -> FlowState:
    if isinstance(state, RegistrationReceived):
        try:
            req = RegisterRequest(name=state.name, email=state.email, password=state.password)
        except PydanticValidationError as e:
            return InputRejected(errors=error_messages(e))
        return RegistrationValidated(name=req.name, email=req.email, password=req.password)

    if isinstance(state, RegistrationValidated):
        if event is not None:
            return AccountExists(methods=tuple(sorted(event.auth_methods)))
        return RegistrationUniquenessChecked(
            name=state.name, email=state.email, password=state.password
        )

    if isinstance(state, RegistrationUniquenessChecked):
        return RegistrationHashed(name=state.name, email=state.email, password_hash=event)

    if isinstance(state, RegistrationHashed):
        if event is None:
            return AccountExists()
        return AccountCreated(account=event)

    if isinstance(state, AccountCreated):
        if event is None:
            return RegistrationRollback(account=state.account, reason="token_issue_failed")
        return RegistrationVerificationIssued(account=state.account, token=event)

    if isinstance(state, RegistrationVerificationIssued):
        if event:
            return VerificationSent(email=state.account.email)
        return RegistrationRollback(account=state.account, reason="notification_failed")

    if isinstance(state, RegistrationRollback):
        return RegistrationFailed(reason=state.reason)

    raise ValueError(f"advance_registration: unexpected state {type(state).__name__}")


# ── Email verification ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class VerificationTokenPresented(FlowState):
    token: Any


@dataclass(frozen=True)
class VerificationTokenWellFormed(FlowState):
    """Effect: consume the token. Event: VerificationResult."""

    token: str


@dataclass(frozen=True)
class VerificationTokenMatched(FlowState):
    """Effect: set email_verified_at (token reinstated on failure). Event ignored."""

    result: VerificationResult


def advance_email_verification(state: FlowState, event: Any = None) -> FlowState:
    if isinstance(state, VerificationTokenPresented):
        if not is_well_formed(state.token, TokenPurpose.VERIFICATION):
            return TokenRejected()
        return VerificationTokenWellFormed(token=state.token)

    if isinstance(state, VerificationTokenWellFormed):
        if event is None or not event.valid:
            return TokenRejected()
        return VerificationTokenMatched(result=event)

    if isinstance(state, VerificationTokenMatched):
        return EmailVerified(account_id=str(state.result.account.id))

    raise ValueError(
        f"advance_email_verification: unexpected state {type(state).__name__}"
    )
