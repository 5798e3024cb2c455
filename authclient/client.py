"""
authclient/client.py -- Client session cache for cookie-based SessionKit auth.

AuthClient is the single in-process source of truth for "who is logged in".
It owns the cached user, the subscriber registry and the request wrapper
that talks to the auth endpoints. It has no UI framework dependency: a CLI,
a desktop app or a test can subscribe equally.

State:
  - The cached user changes only through _set_user(). Every change is
    followed by a synchronous notification of every subscriber in
    subscription order, and, with a storage backend, by a save/clear.
  - fetch() is the request wrapper. A 401 seen while a user is cached clears
    the user immediately (auto-logout), on any route, before the response is
    handed back. Transport errors are logged and re-raised after that.
  - init() queries /me once per AuthClient. Concurrent callers share the
    single in-flight attempt; later calls return the cached result.

High-level operations (register, login, ...) never raise: they return an
AuthResponse with success=False and a readable error instead.

Usage:
    async with AuthClient("http://localhost:8000") as auth:
        unsubscribe = auth.subscribe(lambda user: print("user:", user))
        await auth.init()
        result = await auth.login("alice", "longpass1")
        if not result.success:
            print(result.error, result.status)
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Optional

import httpx

from authclient.models import AuthResponse, User
from authclient.storage import SessionStorage

logger = logging.getLogger("sessionkit.client")

Subscriber = Callable[[Optional[User]], None]

# Malformed or unexpected JSON in an otherwise successful response.
_BAD_BODY = (ValueError, KeyError, TypeError)


class AuthClient:
    """Cookie-session client with a cached, observable current user.

    Args:
        base_url:    Server origin, e.g. "http://localhost:8000". A trailing
                     slash is ignored.
        auth_prefix: Mount point of the auth routes on the server.
        headers:     Extra headers sent with every request.
        storage:     Optional SessionStorage. When given, the cached user is
                     loaded from it at construction and written back on every
                     change, and init() keeps that user through a transport
                     failure (but not through an explicit non-OK response).
        http_client: Optional httpx.AsyncClient to use instead of creating
                     one. Its cookie jar holds the session cookie. A client
                     passed in is not closed by aclose().
        timeout:     Request timeout in seconds for the client created here.
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_prefix: str = "/auth",
        headers: Optional[dict[str, str]] = None,
        storage: Optional[SessionStorage] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        prefix = auth_prefix.strip("/")
        self.auth_prefix = f"/{prefix}" if prefix else ""
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._storage = storage
        self._owns_http = http_client is None
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)

        self._user: Optional[User] = None
        self._subscribers: dict[int, Subscriber] = {}
        self._keys = itertools.count()
        self._initialized = False
        self._init_task: Optional[asyncio.Task] = None

        if storage is not None:
            self._user = self._load_persisted(storage)

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # State and subscribers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback and call it once right away with the current user.

        Returns a function that detaches this registration. Subscribing and
        unsubscribing from inside a callback is safe.
        """
        key = next(self._keys)
        self._subscribers[key] = callback
        self._deliver(callback, self._user)

        def unsubscribe() -> None:
            self._subscribers.pop(key, None)

        return unsubscribe

    def get_user(self) -> Optional[User]:
        return self._user

    def is_authenticated(self) -> bool:
        return self._user is not None

    def _set_user(self, user: Optional[User]) -> None:
        self._user = user
        if self._storage is not None:
            self._persist(user)
        self._notify()

    def _notify(self) -> None:
        # Iterate a snapshot; skip anything unsubscribed by an earlier callback
        # in this same round. Subscribers added mid-round already got the
        # current user from subscribe() itself.
        user = self._user
        for key, callback in list(self._subscribers.items()):
            if key in self._subscribers:
                self._deliver(callback, user)

    @staticmethod
    def _deliver(callback: Subscriber, user: Optional[User]) -> None:
        try:
            callback(user)
        except Exception:
            logger.exception("Auth subscriber %r raised", callback)

    def _persist(self, user: Optional[User]) -> None:
        try:
            if user is None:
                self._storage.clear()
            else:
                self._storage.save(user.to_dict())
        except OSError:
            logger.warning("Could not persist session state", exc_info=True)

    @staticmethod
    def _load_persisted(storage: SessionStorage) -> Optional[User]:
        data = storage.load()
        if not data:
            return None
        try:
            return User.from_dict(data)
        except TypeError:
            logger.warning("Discarding malformed persisted user")
            storage.clear()
            return None

    # ------------------------------------------------------------------
    # Request wrapper
    # ------------------------------------------------------------------

    async def fetch(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send a request with the client's defaults; auto-logout on 401.

        endpoint is either an absolute URL or a path appended to base_url.
        Extra keyword arguments go to httpx (json=, params=, headers=, ...).
        Raises httpx.HTTPError on transport failure, after logging it.
        """
        url = endpoint if endpoint.startswith(("http://", "https://")) else f"{self.base_url}{endpoint}"
        headers = {**self._headers, **(kwargs.pop("headers", None) or {})}
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError:
            logger.error("Request failed: %s %s", method, url, exc_info=True)
            raise

        if response.status_code == 401 and self._user is not None:
            logger.info("Server rejected the session on %s %s; clearing cached user", method, url)
            self._set_user(None)
        return response

    def _path(self, route: str) -> str:
        return f"{self.auth_prefix}{route}"

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def init(self) -> Optional[User]:
        """Ask the server who is logged in, once.

        The first call queries /me; concurrent callers await that same
        attempt, and later callers get the cached user without a request.
        """
        if self._initialized:
            return self._user
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._check_session())
        return await asyncio.shield(self._init_task)

    async def ready(self) -> Optional[User]:
        """Wait until init() has completed at least once, then return the current user."""
        if not self._initialized:
            await self.init()
        return self._user

    async def refresh(self) -> Optional[User]:
        """Re-query /me even if init() already ran.

        Joins an attempt that is already in flight instead of starting another.
        """
        if self._init_task is not None and not self._init_task.done():
            return await asyncio.shield(self._init_task)
        self._initialized = False
        self._init_task = None
        return await self.init()

    async def _check_session(self) -> Optional[User]:
        try:
            await self._query_me()
        except BaseException:
            # Unexpected failure: let the next init() try again.
            self._init_task = None
            raise
        self._initialized = True
        return self._user

    async def _query_me(self) -> None:
        had_user = self._user is not None
        try:
            response = await self.fetch("GET", self._path("/me"))
        except httpx.HTTPError:
            if self._storage is not None and had_user:
                logger.warning("Auth server unreachable; keeping persisted user %s", self._user.username)
            else:
                self._set_user(None)
            return

        if response.is_success:
            try:
                user: Optional[User] = User.from_dict(response.json())
            except _BAD_BODY:
                logger.warning("Unexpected /me response body; treating as logged out")
                user = None
            self._set_user(user)
        elif response.status_code != 401 or not had_user:
            # A 401 with a cached user was already cleared (and announced) by fetch().
            self._set_user(None)

    # ------------------------------------------------------------------
    # Auth operations
    # ------------------------------------------------------------------

    async def register(self, user_data: dict[str, Any]) -> AuthResponse[dict]:
        """Create an account. Does not log in."""
        try:
            response = await self.fetch("POST", self._path("/register"), json=user_data)
            if not response.is_success:
                return _failure(response, "Registration failed")
            data = response.json()
        except httpx.HTTPError as exc:
            return _network_failure(exc)
        except _BAD_BODY:
            return _bad_body(response)
        return AuthResponse(success=True, data=data, status=response.status_code)

    async def login(self, username: str, password: str) -> AuthResponse[User]:
        try:
            response = await self.fetch("POST", self._path("/login"), json={"username": username, "password": password})
            if not response.is_success:
                return _failure(response, "Login failed")
            user = User.from_dict(response.json()["user"])
        except httpx.HTTPError as exc:
            return _network_failure(exc)
        except _BAD_BODY:
            return _bad_body(response)
        self._set_user(user)
        return AuthResponse(success=True, data=user, status=response.status_code)

    async def logout(self) -> AuthResponse[None]:
        """End the session. Local state is cleared even if the server is unreachable."""
        try:
            await self.fetch("POST", self._path("/logout"))
        except httpx.HTTPError as exc:
            self._set_user(None)
            return _network_failure(exc)
        self._set_user(None)
        return AuthResponse(success=True)

    async def update_profile(self, updates: dict[str, Any]) -> AuthResponse[User]:
        try:
            response = await self.fetch("PATCH", self._path("/me"), json=updates)
            if not response.is_success:
                return _failure(response, "Update failed")
            user = User.from_dict(response.json()["user"])
        except httpx.HTTPError as exc:
            return _network_failure(exc)
        except _BAD_BODY:
            return _bad_body(response)
        self._set_user(user)
        return AuthResponse(success=True, data=user, status=response.status_code)

    async def change_password(self, current_password: str, new_password: str) -> AuthResponse[None]:
        """Change the password. On success the session is over and the user must log in again."""
        body = {"currentPassword": current_password, "newPassword": new_password}
        try:
            response = await self.fetch("PATCH", self._path("/change-password"), json=body)
        except httpx.HTTPError as exc:
            return _network_failure(exc)
        if not response.is_success:
            return _failure(response, "Password change failed")
        self._set_user(None)
        return AuthResponse(success=True, status=response.status_code)

    async def get_users(self) -> AuthResponse[list[User]]:
        try:
            response = await self.fetch("GET", self._path("/users"))
            if not response.is_success:
                return _failure(response, "Failed to fetch users")
            users = [User.from_dict(item) for item in response.json()]
        except httpx.HTTPError as exc:
            return _network_failure(exc)
        except _BAD_BODY:
            return _bad_body(response)
        return AuthResponse(success=True, data=users, status=response.status_code)

    async def delete_user(self, user_id: int) -> AuthResponse[None]:
        """Delete an account. Deleting the cached user also ends the local session."""
        try:
            response = await self.fetch("DELETE", self._path(f"/user/{user_id}"))
        except httpx.HTTPError as exc:
            return _network_failure(exc)
        if not response.is_success:
            return _failure(response, "Delete failed")
        if self._user is not None and self._user.id == user_id:
            self._set_user(None)
        return AuthResponse(success=True, status=response.status_code)


# ---------------------------------------------------------------------------
# Result helpers
# ---------------------------------------------------------------------------


def _failure(response: httpx.Response, fallback: str) -> AuthResponse:
    """Build a failed AuthResponse from the server's {"message": ...} envelope."""
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message")
    return AuthResponse(success=False, error=message or fallback, status=response.status_code)


def _network_failure(exc: httpx.HTTPError) -> AuthResponse:
    return AuthResponse(success=False, error=str(exc) or "Network error")


def _bad_body(response: httpx.Response) -> AuthResponse:
    return AuthResponse(success=False, error="Unexpected response from server", status=response.status_code)
