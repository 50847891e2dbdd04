"""
Input validators: framework-agnostic, pure functions.

Token shape checks live here rather than in the ledger so the presentation
layer can run the exact same check on user-supplied text before submitting
it.
"""

from __future__ import annotations

import re
from typing import Any

import validators as _validators

HEX_TOKEN_PATTERN = re.compile(r"[0-9a-f]{64}")
NUMERIC_CODE_PATTERN = re.compile(r"[0-9]{6}")


def normalize_email(email: str) -> str:
    """Lower-case and trim an email address."""
    return email.strip().lower()


def validate_email(email: str) -> bool:
    """Return True if *email* is a syntactically valid address."""
    return bool(_validators.email(email))


def is_hex_token(value: Any) -> bool:
    """Exactly 64 lowercase hex characters."""
    return isinstance(value, str) and HEX_TOKEN_PATTERN.fullmatch(value) is not None


def is_numeric_code(value: Any) -> bool:
    """Exactly 6 ASCII digits."""
    return isinstance(value, str) and NUMERIC_CODE_PATTERN.fullmatch(value) is not None
