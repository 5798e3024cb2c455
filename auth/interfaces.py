"""
auth/interfaces.py -- Storage contracts the auth endpoints depend on.

The API layer resolves a CredentialStore and a LoginLedger through FastAPI
dependencies (api/routes/auth.py) rather than importing concrete classes, so
tests can swap in doubles with app.dependency_overrides. UserStore and
LoginHistoryStore are the SQLAlchemy implementations.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import LoginHistoryEntry, User


class CredentialStore(Protocol):
    def create_user(self, username: str, password: str, email: str, profile: dict | None = None) -> int: ...

    def verify_credentials(self, username: str, password: str) -> User | None: ...

    def update_profile(self, user_id: int, fields: dict) -> None: ...

    def change_password(self, user_id: int, new_password: str) -> None: ...

    def revoke_sessions(self, user_id: int) -> int: ...

    def get_by_id(self, user_id: int) -> User | None: ...

    def list_all(self) -> list[User]: ...

    def delete_user(self, user_id: int) -> bool: ...


class LoginLedger(Protocol):
    def record_login(self, user_id: int, timestamp: str | None = None) -> int: ...

    def record_logout(self, user_id: int, timestamp: str | None = None) -> None: ...

    def list_for_user(self, user_id: int) -> list[LoginHistoryEntry]: ...

    def list_all(self) -> list[LoginHistoryEntry]: ...
