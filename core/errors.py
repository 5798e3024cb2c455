"""
core/errors.py -- Error taxonomy shared by the stores, the session guard and the API.

Every domain failure is a SessionKitError subclass carrying the HTTP status
and machine-readable code it maps to. Stores and dependencies raise these;
api/main.py owns the single exception handler that renders them as the
{"message", "code", "detail"} envelope. Route handlers never build error
JSON by hand.

Layer rule: core/ is the kernel. No imports from api/, auth/, or authclient/.
"""

from __future__ import annotations


class SessionKitError(Exception):
    """Base class. Unmapped subclasses render as 500 internal_error."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(SessionKitError):
    """Malformed input that passed schema validation but is still unusable."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request."


class NoFieldsError(ValidationError):
    """A partial update carried no fields to change."""

    code = "no_fields"
    default_message = "No fields to update."


class InvalidCredentials(SessionKitError):
    """Wrong username or password.

    The message is deliberately identical for both cases so the response
    does not reveal whether the username exists.
    """

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid username or password."


class Unauthenticated(SessionKitError):
    """Missing, invalid or expired session, or the session's user no longer exists.

    clear_session=True tells the exception handler to delete the session
    cookie on the way out, so a stale token is not presented again.
    """

    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."

    def __init__(self, message: str | None = None, detail: str | None = None, clear_session: bool = False) -> None:
        super().__init__(message, detail)
        self.clear_session = clear_session


class ForbiddenError(SessionKitError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action."


class NotFoundError(SessionKitError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class ConflictError(SessionKitError):
    """Duplicate identity (username or email already registered)."""

    status_code = 409
    code = "conflict"
    default_message = "User already exists."
