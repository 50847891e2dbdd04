"""Unit tests for the credential flow request DTOs."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from schemas.dto.requests.auth import (
    LoginRequest,
    NewPasswordRequest,
    PasswordResetRequest,
    RegisterRequest,
    error_messages,
)


# ── LoginRequest ───────────────────────────────────────────────────────────────


class TestLoginRequest:
    def test_email_normalised(self):
        req = LoginRequest(email=" A@X.com ", password="x")
        assert req.email == "a@x.com"

    @pytest.mark.parametrize(
        "email, password",
        [("not-an-email", "secret1"), ("a@x.com", "")],
        ids=["bad_email", "empty_password"],
    )
    def test_rejected(self, email, password):
        with pytest.raises(ValidationError):
            LoginRequest(email=email, password=password)


# ── RegisterRequest ────────────────────────────────────────────────────────────


class TestRegisterRequest:
    def test_valid(self):
        req = RegisterRequest(name="  Alice ", email="Alice@X.com", password="secret1")
        assert req.name == "Alice"
        assert req.email == "alice@x.com"

    @pytest.mark.parametrize(
        "name, email, password",
        [
            ("A", "a@x.com", "secret1"),
            ("  A  ", "a@x.com", "secret1"),
            ("Alice", "a@", "secret1"),
            ("Alice", "a@x.com", "12345"),
        ],
        ids=["short_name", "short_name_padded", "bad_email", "short_password"],
    )
    def test_rejected(self, name, email, password):
        with pytest.raises(ValidationError):
            RegisterRequest(name=name, email=email, password=password)

    def test_password_of_exactly_six_accepted(self):
        assert RegisterRequest(name="Al", email="a@x.com", password="123456").password == "123456"


# ── Password reset DTOs ────────────────────────────────────────────────────────


class TestPasswordResetRequest:
    def test_valid(self):
        assert PasswordResetRequest(email="B@x.com").email == "b@x.com"

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            PasswordResetRequest(email="nope")


class TestNewPasswordRequest:
    def test_valid(self):
        req = NewPasswordRequest(token="a" * 64, password="newpass")
        assert req.password == "newpass"

    @pytest.mark.parametrize(
        "token, password",
        [("", "newpass"), ("a" * 64, "short")],
        ids=["empty_token", "short_password"],
    )
    def test_rejected(self, token, password):
        with pytest.raises(ValidationError):
            NewPasswordRequest(token=token, password=password)


# ── error_messages ─────────────────────────────────────────────────────────────


def test_error_messages_prefix_field():
    with pytest.raises(ValidationError) as exc_info:
        RegisterRequest(name="A", email="a@x.com", password="1")
    messages = error_messages(exc_info.value)
    assert len(messages) == 2
    assert any(m.startswith("name:") for m in messages)
    assert any(m.startswith("password:") for m in messages)
