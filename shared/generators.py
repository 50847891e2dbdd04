"""
Random token and code generators: pure, side-effect-free functions.

All generators draw from the ``secrets`` module.
"""

from __future__ import annotations

import secrets

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp_code() -> str:
    """Generate a 6-digit numeric code uniformly from [100000, 999999].

    The leading digit is never zero, so the code is always exactly six
    characters without padding.
    """
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def generate_secure_token(nbytes: int = 32) -> str:
    """Generate a cryptographically secure lowercase hex token.

    Args:
        nbytes: Number of random bytes (default 32, giving 64 hex chars).

    Returns:
        Lowercase hex string of length ``2 * nbytes``.
    """
    return secrets.token_hex(nbytes)
