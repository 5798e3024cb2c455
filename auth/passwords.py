"""
auth/passwords.py -- bcrypt password hashing with timing equalization.

Passwords: bcrypt directly (no passlib wrapper). Each hash embeds its own
random salt from bcrypt.gensalt(); the cost factor makes offline brute-force
expensive. bcrypt.checkpw() compares in constant time.

DUMMY_HASH: computed once at import so verify_credentials() can always run
one bcrypt comparison, even for an unknown username. Without it the "no such
user" path returns measurably faster than the "wrong password" path and
leaks which usernames exist.

Layer rule: stdlib + bcrypt only.
"""

from __future__ import annotations

import bcrypt

# bcrypt refuses (or, in older releases, truncates) input past 72 bytes. The
# request models reject longer passwords by encoded length, not characters.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is treated as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


DUMMY_HASH: str = hash_password("sessionkit_timing_dummy")
