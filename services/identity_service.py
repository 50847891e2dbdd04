"""
Identity merge and session composition.

Every successful sign-in ends here. Local (password) sign-ins already have
the account loaded and only need their claims read off it. Federated
sign-ins reconcile the provider's identity with the stored account first:

- unseen email: create the account (role "user", verified now, the provider
  as its only linked method)
- known email: union the provider into auth_methods, fill in image and name
  only where missing, and mark the email verified if it was not

Policy: federated providers are trusted to have verified the email address
they report (TRUST_PROVIDER_EMAIL_VERIFICATION). That is why a federated
sign-in creates verified accounts and retroactively verifies local ones.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from config import AuthSettings
from errors import IdentityMergeError, ValidationError
from repositories.protocol import AccountStore
from schemas.models.account import AUTH_METHOD_CREDENTIALS, ROLE_USER, AccountDoc
from schemas.models.federated import FederatedProfile
from schemas.models.session import SessionClaims
from shared.datetime_utils import utc_now
from shared.logging import get_logger

log = get_logger(__name__)

TRUST_PROVIDER_EMAIL_VERIFICATION = True


class IdentityService:
    def __init__(
        self,
        accounts: AccountStore,
        settings: AuthSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._accounts = accounts
        self._settings = settings
        self._clock = clock

    def local_claims(self, account: AccountDoc) -> SessionClaims:
        return SessionClaims(
            account_id=str(account.id),
            role=account.role,
            email_verified_at=account.email_verified_at,
            auth_method=AUTH_METHOD_CREDENTIALS,
        )

    def _check_profile(self, profile: FederatedProfile) -> None:
        if profile.provider not in self._settings.oauth_providers:
            raise ValidationError(
                f"Provider '{profile.provider}' is not enabled", field="provider"
            )
        if not profile.email:
            raise ValidationError("Provider did not report an email address", field="email")

    async def sign_in_federated(self, profile: FederatedProfile) -> SessionClaims:
        """Merge *profile* into the account store and return session claims.

        Raises:
            ValidationError: provider not enabled, or no email in the profile.
            IdentityMergeError: the store failed during the merge.
        """
        self._check_profile(profile)
        try:
            existing = await self._accounts.find_by_email(profile.email)
            if existing is None:
                account = await self._create(profile)
                verified_at = account.email_verified_at
            else:
                account = existing
                verified_at = await self._merge(existing, profile)
        except Exception as e:
            log.error(
                "identity_merge_failed",
                provider=profile.provider,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise IdentityMergeError(
                "Signed in, but the account could not be updated. Please try again."
            ) from e

        return SessionClaims(
            account_id=str(account.id),
            role=account.role,
            email_verified_at=verified_at,
            auth_method=profile.provider,
        )

    async def _create(self, profile: FederatedProfile) -> AccountDoc:
        now = self._clock()
        account = await self._accounts.insert(
            AccountDoc(
                email=profile.email,
                name=profile.name,
                image=profile.picture,
                auth_methods=[profile.provider],
                role=ROLE_USER,
                email_verified_at=now if TRUST_PROVIDER_EMAIL_VERIFICATION else None,
                created_at=now,
            )
        )
        log.info("federated_account_created", account_id=str(account.id), provider=profile.provider)
        return account

    async def _merge(
        self, account: AccountDoc, profile: FederatedProfile
    ) -> Optional[datetime]:
        """Apply the merge; return the verification timestamp after it."""
        fields: dict = {}
        if not account.has_image and profile.picture:
            fields["image"] = profile.picture
        if not account.name and profile.name:
            fields["name"] = profile.name
        verified_at = account.email_verified_at
        if verified_at is None and TRUST_PROVIDER_EMAIL_VERIFICATION:
            verified_at = self._clock()
            fields["email_verified_at"] = verified_at

        updated = await self._accounts.update(account.id, fields, add_methods=[profile.provider])
        if not updated:
            raise LookupError(f"account {account.id} disappeared during merge")
        log.info(
            "federated_account_merged",
            account_id=str(account.id),
            provider=profile.provider,
            linked=profile.provider not in account.auth_methods,
            backfilled=sorted(fields),
        )
        return verified_at
