from __future__ import annotations

from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError

_pwd_hasher = PasswordHasher(type=Type.ID)


def hash_password(password: str) -> str:
    """Return a salted Argon2id encoded hash of ``password``."""

    return _pwd_hasher.hash(password)


def verify_password(stored_hash: Optional[str], candidate: str) -> bool:
    """True iff ``candidate`` matches ``stored_hash``; never raises on bad input."""

    if not stored_hash:
        return False
    try:
        return _pwd_hasher.verify(stored_hash, candidate)
    except (InvalidHash, VerificationError):
        return False


__all__ = ["hash_password", "verify_password"]
