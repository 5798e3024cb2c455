"""
auth/dependencies.py -- FastAPI Depends() helpers: collaborator providers and the session guard.

Providers (get_user_store, get_login_ledger, get_token_service,
get_session_cookie) read the objects wired into app.state by the lifespan.
Routes depend on the providers, never on app.state directly, so tests can
replace any of them with app.dependency_overrides.

Session guard, in order:
  1. Read the token from the session cookie. Missing -> 401 (nothing to clear).
  2. TokenService.verify(). Invalid/expired/tampered -> 401 + clear cookie.
  3. Resolve the user by claims.user_id. Gone (deleted account) -> 401 + clear.
  4. Compare claims.session_version with the stored one. Stale (password was
     changed since issue) -> 401 + clear.
  5. Hand the resolved User to the route.

The cookie is cleared by the Unauthenticated exception handler in
api/main.py (clear_session=True), so every protected route gets the same
behaviour from one Depends(require_session) without per-route code.

resolve_session() is the soft variant (returns None, never raises). Logout
uses it so that a missing or broken session still logs out cleanly.

Layer rule: may import fastapi (this module is part of its DI system) and
core/. No imports from api/ or authclient/.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from auth.interfaces import CredentialStore, LoginLedger
from auth.models import SessionClaims, User
from auth.tokens import SessionCookie, TokenService
from core.errors import Unauthenticated

logger = logging.getLogger("sessionkit.auth")


# ---------------------------------------------------------------------------
# Collaborator providers
# ---------------------------------------------------------------------------


def get_user_store(request: Request) -> CredentialStore:
    return request.app.state.user_store


def get_login_ledger(request: Request) -> LoginLedger:
    return request.app.state.login_ledger


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_session_cookie(request: Request) -> SessionCookie:
    return request.app.state.session_cookie


# ---------------------------------------------------------------------------
# Session guard
# ---------------------------------------------------------------------------


def _resolve(
    request: Request,
    store: CredentialStore,
    tokens: TokenService,
    cookie: SessionCookie,
) -> tuple[User, SessionClaims]:
    token = cookie.read(request)
    if not token:
        raise Unauthenticated()

    claims = tokens.verify(token)
    if claims is None:
        raise Unauthenticated("Session is invalid or has expired.", clear_session=True)

    user = store.get_by_id(claims.user_id)
    if user is None:
        logger.info("Rejected session for missing user_id=%s", claims.user_id)
        raise Unauthenticated("Session is invalid or has expired.", clear_session=True)

    if user.session_version != claims.session_version:
        logger.info("Rejected revoked session for user_id=%s", user.id)
        raise Unauthenticated("Session is invalid or has expired.", clear_session=True)

    return user, claims


def resolve_session(
    request: Request,
    store: CredentialStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> User | None:
    """Return the session's User, or None if there is no valid session. Never raises."""
    try:
        user, _claims = _resolve(request, store, tokens, cookie)
    except Unauthenticated:
        return None
    return user


def require_session(
    request: Request,
    store: CredentialStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
    cookie: SessionCookie = Depends(get_session_cookie),
) -> User:
    """Require a valid session. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(require_session)): ...
    """
    user, _claims = _resolve(request, store, tokens, cookie)
    return user
