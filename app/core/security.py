"""Password hashing behind a small interface so the algorithm can be swapped."""

import secrets
from functools import lru_cache
from typing import Protocol

import bcrypt

from app.core.config import settings

# Min/max lengths for username and password validation (input validation).
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

# bcrypt only looks at the first 72 bytes of input.
BCRYPT_MAX_BYTES = 72


class PasswordHasher(Protocol):
    """One-way salted hash and verification."""

    def hash(self, plain_password: str) -> str: ...

    def verify(self, plain_password: str, hashed: str) -> bool: ...


class BcryptPasswordHasher:
    """bcrypt with a configurable cost factor."""

    def __init__(self, rounds: int) -> None:
        self.rounds = rounds

    def hash(self, plain_password: str) -> str:
        # Truncate to avoid errors on long input (validation already limits length).
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain_password: str, hashed: str) -> bool:
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False


password_hasher: PasswordHasher = BcryptPasswordHasher(rounds=settings.BCRYPT_ROUNDS)


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    return password_hasher.hash(plain_password)


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    return password_hasher.verify(plain_password, hashed)


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Hash of a random secret, verified against when a login names no known user."""
    return hash_password(secrets.token_hex(16))
