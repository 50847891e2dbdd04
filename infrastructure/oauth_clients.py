"""OAuth provider strategies and Authlib client initialisation.

The handshake itself (redirects, state, callback routing) belongs to the
presentation layer. This module covers the two pieces it needs from the
core side: registering Authlib clients from settings, and turning each
provider's user-info response into a FederatedProfile that
IdentityService.sign_in_federated() understands.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from authlib.integrations.starlette_client import OAuth

from config import OAuthProviderSettings
from schemas.models.federated import FederatedProfile
from shared.logging import get_logger

log = get_logger(__name__)


# ── User-info extractors ──────────────────────────────────────────────────────


def extract_profile_from_google(userinfo: Dict[str, Any]) -> FederatedProfile:
    return FederatedProfile(
        provider="google",
        provider_user_id=str(userinfo.get("sub", "")),
        email=userinfo.get("email") or "",
        email_verified=bool(userinfo.get("email_verified", False)),
        name=userinfo.get("name"),
        picture=userinfo.get("picture"),
    )


def extract_profile_from_github(
    userinfo: Dict[str, Any], email_data: List[Dict[str, Any]]
) -> FederatedProfile:
    primary_email = ""
    email_verified = False
    for entry in email_data:
        if entry.get("primary", False):
            primary_email = entry.get("email") or ""
            email_verified = bool(entry.get("verified", False))
            break
    if not primary_email and email_data:
        primary_email = email_data[0].get("email") or ""
        email_verified = bool(email_data[0].get("verified", False))
    if not primary_email:
        # Public profile email, present only when the user made it public
        primary_email = userinfo.get("email") or ""

    return FederatedProfile(
        provider="github",
        provider_user_id=str(userinfo.get("id", "")),
        email=primary_email,
        email_verified=email_verified,
        name=userinfo.get("name") or userinfo.get("login"),
        picture=userinfo.get("avatar_url"),
    )


def extract_profile_from_facebook(userinfo: Dict[str, Any]) -> FederatedProfile:
    picture = (userinfo.get("picture") or {}).get("data", {}).get("url")
    email = userinfo.get("email") or ""
    return FederatedProfile(
        provider="facebook",
        provider_user_id=str(userinfo.get("id", "")),
        email=email,
        # Graph API only returns confirmed addresses
        email_verified=bool(email),
        name=userinfo.get("name"),
        picture=picture,
    )


def extract_profile_from_linkedin(userinfo: Dict[str, Any]) -> FederatedProfile:
    # OpenID Connect userinfo; same claim names as Google
    name = userinfo.get("name")
    if not name:
        parts = [userinfo.get("given_name"), userinfo.get("family_name")]
        name = " ".join(p for p in parts if p) or None
    return FederatedProfile(
        provider="linkedin",
        provider_user_id=str(userinfo.get("sub", "")),
        email=userinfo.get("email") or "",
        email_verified=bool(userinfo.get("email_verified", False)),
        name=name,
        picture=userinfo.get("picture"),
    )


def _claim_flag(value: Any) -> bool:
    # Apple sends boolean claims as "true"/"false" strings
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def extract_profile_from_apple(
    claims: Dict[str, Any], user: Optional[Dict[str, Any]] = None
) -> FederatedProfile:
    """Build a profile from Apple's id_token claims.

    The id_token never carries a name. Apple posts it once, as the ``user``
    form field of the very first authorization, so *user* is optional.
    """
    name = None
    if user:
        parts = user.get("name") or {}
        name = " ".join(p for p in [parts.get("firstName"), parts.get("lastName")] if p) or None
    return FederatedProfile(
        provider="apple",
        provider_user_id=str(claims.get("sub", "")),
        email=claims.get("email") or "",
        email_verified=_claim_flag(claims.get("email_verified", False)),
        name=name,
        picture=None,
    )


# ── Provider strategies ───────────────────────────────────────────────────────


class OAuthProviderStrategy(ABC):
    """Encapsulates everything that differs between OAuth providers."""

    @property
    @abstractmethod
    def key(self) -> str: ...

    @abstractmethod
    async def fetch_profile(self, client: Any, token: Any) -> FederatedProfile: ...


class GoogleStrategy(OAuthProviderStrategy):
    key = "google"

    async def fetch_profile(self, client: Any, token: Any) -> FederatedProfile:
        userinfo = token.get("userinfo")
        if userinfo is None:
            resp = await client.get("userinfo", token=token)
            resp.raise_for_status()
            userinfo = resp.json()
        return extract_profile_from_google(userinfo)


class GitHubStrategy(OAuthProviderStrategy):
    key = "github"

    async def fetch_profile(self, client: Any, token: Any) -> FederatedProfile:
        user_response = await client.get("user", token=token)
        user_response.raise_for_status()
        user = user_response.json()
        emails_response = await client.get("user/emails", token=token)
        emails = emails_response.json() if emails_response.status_code == 200 else []
        if not isinstance(emails, list):
            emails = []
        return extract_profile_from_github(user, emails)


class FacebookStrategy(OAuthProviderStrategy):
    key = "facebook"

    async def fetch_profile(self, client: Any, token: Any) -> FederatedProfile:
        resp = await client.get(
            "me", token=token, params={"fields": "id,name,email,picture.type(large)"}
        )
        resp.raise_for_status()
        return extract_profile_from_facebook(resp.json())


class LinkedInStrategy(OAuthProviderStrategy):
    key = "linkedin"

    async def fetch_profile(self, client: Any, token: Any) -> FederatedProfile:
        userinfo = token.get("userinfo")
        if userinfo is None:
            userinfo = await client.userinfo(token=token)
        return extract_profile_from_linkedin(dict(userinfo))


class AppleStrategy(OAuthProviderStrategy):
    """Apple has no user-info endpoint; everything comes from the id_token."""

    key = "apple"

    async def fetch_profile(self, client: Any, token: Any) -> FederatedProfile:
        claims = token.get("userinfo")
        if claims is None:
            claims = await client.parse_id_token(token, nonce=None)
        return extract_profile_from_apple(dict(claims), token.get("user"))


PROVIDER_STRATEGIES: dict[str, OAuthProviderStrategy] = {
    s.key: s()
    for s in [GoogleStrategy, GitHubStrategy, FacebookStrategy, LinkedInStrategy, AppleStrategy]
}


# ── Authlib init ─────────────────────────────────────────────────────────────


_REGISTRATION_KWARGS: dict[str, dict[str, Any]] = {
    "google": {
        "server_metadata_url": "https://accounts.google.com/.well-known/openid-configuration",
        "client_kwargs": {"scope": "openid email profile", "prompt": "select_account"},
    },
    "github": {
        "access_token_url": "https://github.com/login/oauth/access_token",
        "authorize_url": "https://github.com/login/oauth/authorize",
        "api_base_url": "https://api.github.com/",
        "client_kwargs": {"scope": "user:email"},
    },
    "facebook": {
        "access_token_url": "https://graph.facebook.com/v19.0/oauth/access_token",
        "authorize_url": "https://www.facebook.com/v19.0/dialog/oauth",
        "api_base_url": "https://graph.facebook.com/v19.0/",
        "client_kwargs": {"scope": "email public_profile"},
    },
    "linkedin": {
        "server_metadata_url": "https://www.linkedin.com/oauth/.well-known/openid-configuration",
        "client_kwargs": {
            "scope": "openid profile email",
            "token_endpoint_auth_method": "client_secret_post",
        },
    },
    "apple": {
        "server_metadata_url": "https://appleid.apple.com/.well-known/openid-configuration",
        "client_kwargs": {"scope": "openid email name", "response_mode": "form_post"},
    },
}


def init_oauth(
    settings: OAuthProviderSettings, enabled: Tuple[str, ...]
) -> Tuple[Optional[OAuth], Dict[str, Any]]:
    """Register an Authlib client for every enabled provider with credentials.

    Returns (None, {}) if no provider ends up configured.
    """
    oauth = OAuth()
    providers: Dict[str, Any] = {}

    for name in enabled:
        registration = _REGISTRATION_KWARGS.get(name)
        if registration is None:
            log.warning("oauth_provider_unsupported", provider=name)
            continue
        client_id = getattr(settings, f"{name}_oauth_client_id", "")
        client_secret = getattr(settings, f"{name}_oauth_client_secret", "")
        if not (client_id and client_secret):
            continue
        try:
            providers[name] = oauth.register(
                name=name,
                client_id=client_id,
                client_secret=client_secret,
                **registration,
            )
            log.info("oauth_provider_initialized", provider=name)
        except Exception as e:
            log.error("oauth_provider_init_failed", provider=name, error=str(e))

    if not providers:
        log.warning("oauth_no_providers_configured")
        return None, {}

    return oauth, providers
