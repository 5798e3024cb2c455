"""
api/routes/auth.py -- Authentication and user endpoints.

Mounted under Settings.auth_prefix (default /auth) by api/main.py.

Routes:
  POST   /register          -- create a user; 201 {message, userId}
  POST   /login             -- verify credentials; set session cookie; {message, user}
  POST   /logout            -- clear cookie, close ledger entry; always 200
  GET    /me                -- current user view (session required)
  PATCH  /me                -- partial profile update (session required)
  PATCH  /change-password   -- replace password, revoke sessions, clear cookie
  GET    /users             -- all user views (session required)
  GET    /user/{user_id}    -- one user view (session required)
  DELETE /user/{user_id}    -- delete own account (session required, self only)
  GET    /login-history     -- caller's ledger entries (session required)
  GET    /logged-in-users   -- whole ledger (session required)

Session state machine: anonymous --login--> authenticated --(logout |
password change | self-delete | guard rejection)--> anonymous.

Authorization limits (deliberate): there is no admin role. Any
authenticated user may list and read all users and the whole ledger;
DELETE is restricted to the caller's own account.

Handlers are plain `def`: bcrypt and SQLite calls block, and FastAPI runs
sync handlers in its thread pool so they do not stall the event loop.

Login history writes go through _record(): a ledger failure is logged and
swallowed so it can never fail the login or logout it describes.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import APIRouter, Depends, Path
from fastapi.responses import JSONResponse

from api.models import (
    ChangePasswordRequest,
    LoginHistoryView,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UpdateProfileRequest,
    UserMessageResponse,
    UserView,
)
from auth.dependencies import (
    get_login_ledger,
    get_session_cookie,
    get_token_service,
    get_user_store,
    require_session,
    resolve_session,
)
from auth.interfaces import CredentialStore, LoginLedger
from auth.models import User
from auth.tokens import SessionCookie, TokenService
from core.errors import ForbiddenError, InvalidCredentials, NoFieldsError, NotFoundError

logger = logging.getLogger("sessionkit.api")

router = APIRouter()

# SQLite INTEGER is a signed 64-bit value.
_MAX_USER_ID = 2**63 - 1


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(body: RegisterRequest, store: CredentialStore = Depends(get_user_store)) -> RegisterResponse:
    """Create a user. 409 if the username or email is taken."""
    user_id = store.create_user(body.username, body.password, body.email, body.profile())
    return RegisterResponse(message="User registered successfully.", user_id=user_id)


@router.post("/login", response_model=UserMessageResponse)
def login(
    body: LoginRequest,
    store: CredentialStore = Depends(get_user_store),
    ledger: LoginLedger = Depends(get_login_ledger),
    tokens: TokenService = Depends(get_token_service),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> JSONResponse:
    """Verify credentials, issue a session token as a cookie, record the login.

    Wrong username and wrong password raise the same InvalidCredentials.
    The token is only ever sent in the Set-Cookie header, never in the body.
    """
    user = store.verify_credentials(body.username, body.password)
    if user is None:
        raise InvalidCredentials()

    token = tokens.issue(user.id, user.username, user.session_version)
    _record(ledger.record_login, user.id)
    logger.info("Login user_id=%s", user.id)

    resp = JSONResponse(
        status_code=200,
        content=UserMessageResponse(message="Login successful.", user=_view(user)).model_dump(),
    )
    cookie.attach(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout", response_model=MessageResponse)
def logout(
    current_user: User | None = Depends(resolve_session),
    ledger: LoginLedger = Depends(get_login_ledger),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> JSONResponse:
    """Clear the session cookie. Succeeds whether or not a session existed."""
    if current_user is not None:
        _record(ledger.record_logout, current_user.id)
        logger.info("Logout user_id=%s", current_user.id)
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    cookie.clear(resp)
    return resp


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserView)
def me(current_user: User = Depends(require_session)) -> UserView:
    """Return the view of the user bound to the session cookie."""
    return _view(current_user)


@router.patch("/me", response_model=UserMessageResponse)
def update_me(
    body: UpdateProfileRequest,
    current_user: User = Depends(require_session),
    store: CredentialStore = Depends(get_user_store),
) -> UserMessageResponse:
    """Patch only the supplied profile fields. 400 if none were supplied."""
    changes = body.changes()
    if not changes:
        raise NoFieldsError()
    store.update_profile(current_user.id, changes)
    updated = store.get_by_id(current_user.id)
    if updated is None:
        raise NotFoundError("User not found.")
    return UserMessageResponse(message="Profile updated.", user=_view(updated))


@router.patch("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(require_session),
    store: CredentialStore = Depends(get_user_store),
    ledger: LoginLedger = Depends(get_login_ledger),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> JSONResponse:
    """Replace the password and end every session for this user.

    The current password is re-checked through verify_credentials() so the
    comparison gets the same timing treatment as login. On success the
    session version is bumped (old cookies everywhere stop working) and this
    response clears the caller's cookie, forcing a fresh login.
    """
    if store.verify_credentials(current_user.username, body.current_password) is None:
        raise InvalidCredentials("Current password is incorrect.")

    store.change_password(current_user.id, body.new_password)
    store.revoke_sessions(current_user.id)
    _record(ledger.record_logout, current_user.id)
    logger.info("Password changed user_id=%s; sessions revoked", current_user.id)

    resp = JSONResponse(content=MessageResponse(message="Password changed. Please log in again.").model_dump())
    cookie.clear(resp)
    return resp


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserView])
def list_users(
    current_user: User = Depends(require_session),
    store: CredentialStore = Depends(get_user_store),
) -> list[UserView]:
    """List all users. Any authenticated user may call this."""
    return [_view(u) for u in store.list_all()]


@router.get("/user/{user_id}", response_model=UserView)
def get_user(
    user_id: int = Path(ge=1, le=_MAX_USER_ID),
    current_user: User = Depends(require_session),
    store: CredentialStore = Depends(get_user_store),
) -> UserView:
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return _view(user)


@router.delete("/user/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int = Path(ge=1, le=_MAX_USER_ID),
    current_user: User = Depends(require_session),
    store: CredentialStore = Depends(get_user_store),
    ledger: LoginLedger = Depends(get_login_ledger),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> JSONResponse:
    """Delete the caller's own account and end the session.

    Any other target is 403, whether or not it exists, so the route cannot be
    used to probe for valid user IDs.
    """
    if user_id != current_user.id:
        raise ForbiddenError("You can only delete your own account.")

    if not store.delete_user(user_id):
        raise NotFoundError("User not found.")
    _record(ledger.record_logout, user_id)

    resp = JSONResponse(content=MessageResponse(message="User deleted.").model_dump())
    cookie.clear(resp)
    return resp


# ---------------------------------------------------------------------------
# Login history
# ---------------------------------------------------------------------------


@router.get("/login-history", response_model=list[LoginHistoryView])
def my_login_history(
    current_user: User = Depends(require_session),
    ledger: LoginLedger = Depends(get_login_ledger),
) -> list[LoginHistoryView]:
    return [LoginHistoryView(**vars(e)) for e in ledger.list_for_user(current_user.id)]


@router.get("/logged-in-users", response_model=list[LoginHistoryView])
def all_login_history(
    current_user: User = Depends(require_session),
    ledger: LoginLedger = Depends(get_login_ledger),
) -> list[LoginHistoryView]:
    """Whole ledger, newest first. Same authorization tier as GET /users."""
    return [LoginHistoryView(**vars(e)) for e in ledger.list_all()]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _view(user: User) -> UserView:
    return UserView(**user.public_view())


def _record(action: Callable[[int], object], user_id: int) -> None:
    """Run a ledger write; log and swallow any failure."""
    try:
        action(user_id)
    except Exception:  # noqa: BLE001 -- the ledger must never block login/logout
        logger.warning("Login history update failed for user_id=%s", user_id, exc_info=True)
