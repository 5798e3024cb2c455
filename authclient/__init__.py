"""authclient/ -- Client session cache for SessionKit servers.

Speaks to the auth endpoints over HTTP only. It does NOT import from api/,
auth/, or core/, so it can ship to clients without the server stack.
"""

from authclient.client import AuthClient
from authclient.models import AuthResponse, User
from authclient.storage import JsonFileSessionStorage, MemorySessionStorage, SessionStorage

__all__ = [
    "AuthClient",
    "AuthResponse",
    "JsonFileSessionStorage",
    "MemorySessionStorage",
    "SessionStorage",
    "User",
]
