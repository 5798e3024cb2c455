"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond view helpers).
Stores and routes do the work.

Layer rule: no imports from api/ or authclient/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Optional profile columns a user may set at registration and patch later.
# Order matters only for display; the tuple doubles as the PATCH whitelist.
PROFILE_FIELDS: tuple[str, ...] = ("firstname", "lastname", "age", "phone", "address")


@dataclass
class User:
    """A registered identity.

    hashed_password is populated only inside the store layer. It is never
    serialized: public_view() is the one shape that leaves the server, and
    it does not include the hash or the session_version.

    session_version is bumped by UserStore.revoke_sessions(). Tokens carry
    the value they were issued with; the session guard rejects mismatches.
    """

    username: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    age: int | None = None
    phone: str | None = None
    address: str | None = None
    created_at: str | None = None
    session_version: int = 0

    def public_view(self) -> dict:
        """Return the caller-facing representation (no password hash)."""
        view = {"id": self.id, "username": self.username, "email": self.email}
        for name in PROFILE_FIELDS:
            view[name] = getattr(self, name)
        view["created_at"] = self.created_at
        return view


@dataclass
class LoginHistoryEntry:
    """One session start/end pair. logged_out_at is None while the session is open."""

    user_id: int
    logged_in_at: str
    id: int | None = None
    logged_out_at: str | None = None

    @property
    def is_open(self) -> bool:
        return self.logged_out_at is None


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    user_id: int
    username: str
    issued_at: int  # unix seconds
    expires_at: int  # unix seconds
    session_version: int = 0
