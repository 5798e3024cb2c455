"""
auth/tokens.py -- Session token minting/verification and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the configured secret
       and carry user_id, username (as "sub"), the user's session_version
       ("ver"), issued-at and expiry. Verification returns None on any
       failure -- malformed, tampered, expired and wrong-shape tokens all
       look the same to the caller. The session guard turns None into 401.

  Secret: injected at TokenService construction (lifespan startup) from
       core.config.Settings and never mutated. Nothing else in the process
       holds the key.

  Cookie: the token travels only in an httpOnly cookie; it is never placed in
       a JSON body. SameSite=Lax blocks it on cross-site POSTs. max_age
       matches the JWT expiry so both lapse together.

Layer rule: no imports from api/ or authclient/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time

from jose import JWTError, jwt

from auth.models import SessionClaims

logger = logging.getLogger("sessionkit.auth")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "user_id", "iat", "exp")


class TokenService:
    """Mints and verifies signed, expiring session tokens.

    Usage:
        tokens = TokenService(secret_key=settings.secret_key, expire_seconds=604800)
        token = tokens.issue(user.id, user.username, user.session_version)
        claims = tokens.verify(token)   # SessionClaims or None
    """

    def __init__(self, secret_key: str, expire_seconds: int = 7 * 24 * 3600, algorithm: str = _ALGORITHM) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expire_seconds = expire_seconds

    def issue(self, user_id: int, username: str, session_version: int = 0) -> str:
        """Encode and sign a token for user_id that expires expire_seconds from now."""
        issued_at = int(time.time())
        payload = {
            "sub": username,
            "user_id": user_id,
            "ver": session_version,
            "iat": issued_at,
            "exp": issued_at + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaims | None:
        """Check signature and expiry. Returns the claims, or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return None
        if any(name not in payload for name in _REQUIRED_CLAIMS):
            return None
        try:
            return SessionClaims(
                user_id=int(payload["user_id"]),
                username=str(payload["sub"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                session_version=int(payload.get("ver", 0)),
            )
        except (TypeError, ValueError):
            logger.debug("Rejected token with malformed claims")
            return None


class SessionCookie:
    """Reads, writes and clears the cookie that carries the session token.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": sent on same-site requests and top-level GET navigations,
        not on cross-site POST -- CSRF mitigation for state-changing routes.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).

    Deletion repeats the same path/samesite/httponly/secure attributes;
    browsers only drop a cookie when those match the original Set-Cookie.
    """

    def __init__(self, name: str = "access_token", max_age: int = 7 * 24 * 3600, secure: bool = False) -> None:
        self.name = name
        self.max_age = max_age
        self.secure = secure

    def read(self, request) -> str | None:
        return request.cookies.get(self.name) or None

    def attach(self, response, token: str) -> None:
        response.set_cookie(
            self.name,
            value=token,
            httponly=True,
            samesite="lax",
            secure=self.secure,
            max_age=self.max_age,
            path="/",
        )

    def clear(self, response) -> None:
        response.delete_cookie(
            self.name,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )
