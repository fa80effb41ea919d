"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

_DUMMY_HASH enables timing equalization in auth.issuer.authenticate() so
response time does not reveal whether an email is registered.

Layer rule: no imports from api/, tasks/, or client/.
"""

from __future__ import annotations

import bcrypt


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt accepts at most 72 bytes; current releases raise ValueError for
    longer input. auth.validation.check_password rejects such passwords
    before they get here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash, or a candidate over bcrypt's 72-byte limit
    (ValueError on bcrypt 5.x), is treated as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("taskboard_timing_dummy")
