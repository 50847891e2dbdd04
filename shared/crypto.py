"""
Cryptographic helpers: password hashing and token hashing.

Passwords are derived with raw Argon2id (via argon2-cffi's low-level API)
and stored as ``"<salt hex>:<key hex>"`` so a stored value carries its own
salt and can be verified without any other record. Cost parameters are not
embedded: verification always re-derives with the hasher's configured
parameters, so changing them invalidates existing hashes.

Token values are stored as SHA-256 digests so the plaintext never reaches
the database.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import os
from typing import Optional

from argon2.low_level import Type, hash_secret_raw

from config import HasherSettings

_DELIMITER = ":"

MIN_TIME_COST = 3
MIN_MEMORY_COST_KIB = 65536
MIN_PARALLELISM = 4
KEY_LENGTH = 32
MIN_SALT_LENGTH = 16


class CredentialHasher:
    """Argon2id password hasher with a self-contained stored form.

    Pure and thread-safe: holds only immutable cost parameters, so one
    instance can be shared across concurrent requests.
    """

    def __init__(
        self,
        time_cost: int = MIN_TIME_COST,
        memory_cost: int = MIN_MEMORY_COST_KIB,
        parallelism: int = MIN_PARALLELISM,
        hash_len: int = KEY_LENGTH,
        salt_len: int = MIN_SALT_LENGTH,
    ) -> None:
        if time_cost < MIN_TIME_COST:
            raise ValueError(f"time_cost must be >= {MIN_TIME_COST}")
        if memory_cost < MIN_MEMORY_COST_KIB:
            raise ValueError(f"memory_cost must be >= {MIN_MEMORY_COST_KIB} KiB")
        if parallelism < MIN_PARALLELISM:
            raise ValueError(f"parallelism must be >= {MIN_PARALLELISM}")
        if hash_len != KEY_LENGTH:
            raise ValueError(f"hash_len must be {KEY_LENGTH}")
        if salt_len < MIN_SALT_LENGTH:
            raise ValueError(f"salt_len must be >= {MIN_SALT_LENGTH}")

        self._time_cost = time_cost
        self._memory_cost = memory_cost
        self._parallelism = parallelism
        self._hash_len = hash_len
        self._salt_len = salt_len

    @classmethod
    def from_settings(cls, settings: HasherSettings) -> "CredentialHasher":
        return cls(
            time_cost=settings.time_cost,
            memory_cost=settings.memory_cost,
            parallelism=settings.parallelism,
            hash_len=settings.hash_len,
            salt_len=settings.salt_len,
        )

    def _derive(self, password: str, salt: bytes) -> bytes:
        return hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt,
            time_cost=self._time_cost,
            memory_cost=self._memory_cost,
            parallelism=self._parallelism,
            hash_len=self._hash_len,
            type=Type.ID,
        )

    def hash(self, password: str) -> str:
        """Hash *password* with a fresh random salt.

        Returns:
            ``"<salt hex>:<key hex>"``
        """
        salt = os.urandom(self._salt_len)
        key = self._derive(password, salt)
        return f"{salt.hex()}{_DELIMITER}{key.hex()}"

    def verify(self, password: str, stored: Optional[str]) -> bool:
        """Verify *password* against a stored ``salt:key`` value.

        Returns:
            ``True`` on a match. ``False`` for a wrong password and for any
            malformed stored value (missing delimiter, empty halves,
            non-hex content, wrong key length); never raises.
        """
        if not isinstance(stored, str) or not isinstance(password, str):
            return False

        salt_hex, sep, key_hex = stored.partition(_DELIMITER)
        if not sep or not salt_hex or not key_hex:
            return False

        try:
            salt = bytes.fromhex(salt_hex)
            expected = bytes.fromhex(key_hex)
        except (ValueError, binascii.Error):
            return False

        if len(expected) != self._hash_len or len(salt) < MIN_SALT_LENGTH:
            return False

        try:
            derived = self._derive(password, salt)
        except Exception:
            return False
        return hmac.compare_digest(derived, expected)


_default_hasher = CredentialHasher()


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with the default Argon2id parameters."""
    return _default_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    """Verify *plain_password* against *password_hash* (default parameters).

    Returns:
        ``True`` if the password matches, ``False`` for any failure.
    """
    return _default_hasher.verify(plain_password, password_hash)


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used for verification, reset and two-factor values before they are
    written to or looked up in the token store.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
