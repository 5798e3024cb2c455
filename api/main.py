"""
api/main.py -- FastAPI application entry point for SessionKit.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost; Starlette wraps the last one added
outermost):
  1. log_requests   -- one access-log line per request, CORS preflights
                       included.
  2. CORSMiddleware -- browser clients on another origin must send the
                       session cookie, so credentials are allowed for the
                       configured origins only (never "*").

Lifespan builds the collaborators once per process and wires them into
app.state, where the providers in auth/dependencies.py pick them up:
  user_store     -- UserStore (credential store)
  login_ledger   -- LoginHistoryStore
  token_service  -- TokenService (signing secret injected here, never mutated)
  session_cookie -- SessionCookie (name / lifetime / secure flag)
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.history import LoginHistoryStore
from auth.store import UserStore
from auth.tokens import SessionCookie, TokenService
from core.config import Settings, get_settings
from core.errors import SessionKitError, Unauthenticated

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionkit.api")

_settings = get_settings()


def build_state(app: FastAPI, settings: Settings, user_store: UserStore, login_ledger: LoginHistoryStore) -> None:
    """Wire the session pipeline into app.state.

    Shared by the real lifespan and the test fixtures so both assemble the
    same objects the same way.
    """
    app.state.user_store = user_store
    app.state.login_ledger = login_ledger
    app.state.token_service = TokenService(
        secret_key=settings.secret_key,
        expire_seconds=settings.token_expire_seconds,
    )
    app.state.session_cookie = SessionCookie(
        name=settings.session_cookie_name,
        max_age=settings.token_expire_seconds,
        secure=settings.secure_cookies,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores on startup, dispose their engines on shutdown."""
    logger.info("SessionKit API starting up")
    user_store = UserStore(_settings.database_url)
    login_ledger = LoginHistoryStore(_settings.database_url)
    build_state(app, _settings, user_store, login_ledger)
    logger.info("Auth initialized (prefix=%s, cookie=%s)", _settings.auth_prefix, _settings.session_cookie_name)

    yield

    user_store.close()
    login_ledger.close()
    logger.info("SessionKit API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SessionKit API",
    description="Cookie-based session authentication.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix=_settings.auth_prefix, tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can read
# "message" without inspecting the status code first.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, code=code, detail=detail).model_dump(),
    )


@app.exception_handler(SessionKitError)
async def sessionkit_error_handler(request: Request, exc: SessionKitError) -> JSONResponse:
    """Render a domain error; delete the session cookie when the guard asked for it."""
    response = _error(exc.status_code, exc.code, exc.message, exc.detail)
    if isinstance(exc, Unauthenticated) and exc.clear_session:
        cookie: SessionCookie = request.app.state.session_cookie
        cookie.clear(response)
    if exc.status_code == 401:
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 `request_invalid` when the body or path fails schema validation.

    Distinct from the 400 `validation_error` raised by route logic.
    """
    return _error(422, "request_invalid", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map framework HTTP errors (404 route, 405 method, ...) into the envelope."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
