"""Unit tests for services.identity_service (federated sign-in merge)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from errors import IdentityMergeError, ValidationError
from schemas.models.account import NO_IMAGE_PLACEHOLDER
from schemas.models.federated import FederatedProfile


def profile(**overrides) -> FederatedProfile:
    data = {
        "provider": "google",
        "provider_user_id": "g-123",
        "email": "b@x.com",
        "email_verified": True,
        "name": "Bea",
        "picture": "https://img.example/b.png",
    }
    data.update(overrides)
    return FederatedProfile(**data)


class TestLocalClaims:
    async def test_reads_claims_off_account(self, identity, make_account):
        account = await make_account("a@x.com", role="admin")
        claims = identity.local_claims(account)
        assert claims.account_id == str(account.id)
        assert claims.role == "admin"
        assert claims.auth_method == "credentials"
        assert claims.email_verified_at == account.email_verified_at


class TestSignInFederatedNewAccount:
    async def test_creates_verified_account(self, identity, accounts, clock):
        claims = await identity.sign_in_federated(profile(email="New@X.com"))

        doc = accounts.by_email("new@x.com")
        assert doc["auth_methods"] == ["google"]
        assert doc["password_hash"] is None
        assert doc["role"] == "user"
        assert doc["image"] == "https://img.example/b.png"
        assert doc["name"] == "Bea"
        assert doc["email_verified_at"] == clock.now
        assert claims.account_id == str(doc["_id"])
        assert claims.auth_method == "google"
        assert claims.email_verified_at == clock.now

    async def test_second_sign_in_reuses_account(self, identity, accounts):
        first = await identity.sign_in_federated(profile())
        second = await identity.sign_in_federated(profile())
        assert first.account_id == second.account_id
        assert len(accounts.docs) == 1


class TestSignInFederatedMerge:
    async def test_links_provider_to_local_account(self, identity, accounts, make_account):
        verified_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
        account = await make_account(
            "b@x.com", image="https://img.example/own.png", email_verified_at=verified_at
        )

        claims = await identity.sign_in_federated(profile())

        doc = accounts.by_email("b@x.com")
        assert set(doc["auth_methods"]) == {"credentials", "google"}
        assert doc["email_verified_at"] == verified_at
        assert doc["image"] == "https://img.example/own.png"
        assert claims.account_id == str(account.id)
        assert claims.auth_method == "google"
        assert claims.email_verified_at == verified_at

    async def test_repeat_sign_in_does_not_duplicate_method(self, identity, accounts, make_account):
        await make_account("b@x.com")
        await identity.sign_in_federated(profile())
        await identity.sign_in_federated(profile())
        assert accounts.by_email("b@x.com")["auth_methods"] == ["credentials", "google"]

    async def test_verifies_unverified_local_account(self, identity, accounts, make_account, clock):
        await make_account("b@x.com", verified=False)
        claims = await identity.sign_in_federated(profile())
        assert accounts.by_email("b@x.com")["email_verified_at"] == clock.now
        assert claims.email_verified_at == clock.now

    @pytest.mark.parametrize("image", [None, "", NO_IMAGE_PLACEHOLDER], ids=["none", "empty", "placeholder"])
    async def test_backfills_missing_image(self, identity, accounts, make_account, image):
        await make_account("b@x.com", image=image)
        await identity.sign_in_federated(profile())
        assert accounts.by_email("b@x.com")["image"] == "https://img.example/b.png"

    async def test_backfills_missing_name_only(self, identity, accounts, make_account):
        await make_account("b@x.com")
        await make_account("c@x.com", name="Cee")
        await identity.sign_in_federated(profile())
        await identity.sign_in_federated(profile(email="c@x.com", name="Other"))
        assert accounts.by_email("b@x.com")["name"] == "Bea"
        assert accounts.by_email("c@x.com")["name"] == "Cee"

    async def test_links_second_provider(self, identity, accounts):
        await identity.sign_in_federated(profile())
        await identity.sign_in_federated(profile(provider="GitHub", picture=None))
        assert accounts.by_email("b@x.com")["auth_methods"] == ["google", "github"]

    async def test_role_preserved(self, identity, make_account):
        await make_account("b@x.com", role="admin")
        assert (await identity.sign_in_federated(profile())).role == "admin"


class TestSignInFederatedErrors:
    async def test_disabled_provider(self, identity, accounts):
        with pytest.raises(ValidationError):
            await identity.sign_in_federated(profile(provider="facebook"))
        assert accounts.docs == {}

    async def test_missing_email(self, identity):
        with pytest.raises(ValidationError):
            await identity.sign_in_federated(profile(email=""))

    @pytest.mark.parametrize("op", ["find_by_email", "insert"], ids=["lookup", "create"])
    async def test_store_failure_on_create(self, identity, accounts, op):
        accounts.fail_on.add(op)
        with pytest.raises(IdentityMergeError) as exc_info:
            await identity.sign_in_federated(profile())
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_store_failure_on_merge(self, identity, accounts, make_account):
        await make_account("b@x.com")
        accounts.fail_on.add("update")
        with pytest.raises(IdentityMergeError):
            await identity.sign_in_federated(profile())
        assert accounts.by_email("b@x.com")["auth_methods"] == ["credentials"]

    async def test_account_deleted_during_merge(self, identity, accounts, make_account, monkeypatch):
        await make_account("b@x.com")
        lookup = accounts.find_by_email

        async def find_then_delete(email):
            found = await lookup(email)
            accounts.docs.clear()
            return found

        monkeypatch.setattr(accounts, "find_by_email", find_then_delete)
        with pytest.raises(IdentityMergeError) as exc_info:
            await identity.sign_in_federated(profile())
        assert isinstance(exc_info.value.__cause__, LookupError)
        assert accounts.docs == {}
