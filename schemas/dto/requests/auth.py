"""
Request DTOs for the credential flows.

LoginRequest          -> login(email, password)
RegisterRequest       -> register(name, email, password)
PasswordResetRequest  -> request_password_reset(email)
NewPasswordRequest    -> reset_password(token, password)

Parsing one of these is the `validated` step of a flow: a failure here ends
the flow before any store access.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.validators import normalize_email, validate_email

MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2


def _checked_email(v: str) -> str:
    v = normalize_email(v)
    if not validate_email(v):
        raise ValueError("Invalid email address")
    return v


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _checked_email(v)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_NAME_LENGTH:
            raise ValueError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _checked_email(v)


class PasswordResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _checked_email(v)


class NewPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(min_length=1)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)


def error_messages(exc: ValidationError) -> tuple[str, ...]:
    """Flatten a pydantic ValidationError into `field: message` strings."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "invalid")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return tuple(messages)
