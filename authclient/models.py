"""
authclient/models.py -- Client-side view of the server's user and operation results.

Pure data containers. The client never sees a password hash: the server's
user view does not carry one, and from_dict() drops unknown keys anyway.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class User:
    id: int
    username: str
    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AuthResponse(Generic[T]):
    """Outcome of a high-level client operation.

    success=False carries a human-readable error and, when the server
    answered, its HTTP status. A transport failure has status=None.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status: Optional[int] = None
