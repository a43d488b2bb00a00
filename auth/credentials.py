"""
auth/credentials.py -- Password hashing, verification and role-scoped login.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). Its cost factor makes
       brute force expensive and checkpw() compares in constant time, so this
       module never compares hash bytes itself.

  Malformed hashes: a normal mismatch returns False. A stored hash bcrypt
       cannot parse raises CryptoFailure -- that is a data problem, not a bad
       password, and the route layer reports it as a server error.

  Enumeration: authenticate() always runs bcrypt exactly once. An unknown
       username is checked against _DUMMY_HASH, and a role mismatch is decided
       only after the password check, so neither "no such user" nor "wrong
       role" is faster than "wrong password".

Layer rule: no imports from board/ or web/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from auth.models import Role

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("noticeboard.auth")


class CryptoFailure(Exception):
    """Raised when a stored password hash is not a valid bcrypt hash."""


# bcrypt's input limit. Newer bcrypt releases raise instead of truncating.
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, stored_hash: str) -> bool:
    """Return True if plain matches stored_hash.

    Raises CryptoFailure if stored_hash is malformed.
    """
    try:
        return bcrypt.checkpw(_encode(plain), stored_hash.encode("utf-8"))
    except ValueError as exc:
        raise CryptoFailure("stored password hash is malformed") from exc


# Computed once at import so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("noticeboard_timing_dummy")


def authenticate(store: UserStore, username: str, password: str, role: Role) -> User | None:
    """Return the user if username exists, the password verifies and the role matches.

    Every other outcome returns None; callers must not tell them apart.
    """
    user = store.get_by_username(username)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    if user.role is not role:
        logger.info("Login for %r rejected: account is not a %s", username, role.value)
        return None
    return user
