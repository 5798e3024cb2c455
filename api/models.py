"""
API request and response models for the SessionKit auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire names: the JSON contract uses camelCase for the two multi-word fields
clients send or read (userId, currentPassword, newPassword). Those are
declared as aliases; populate_by_name lets Python callers use snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.passwords import MAX_PASSWORD_BYTES

# Practical shape check only: one "@", no spaces, a dot in the domain.
# Deliverability is not our problem; uniqueness is enforced by the store.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Characters; the byte limit is checked separately by _check_password_bytes.
_PASSWORD_MIN = 8
_PASSWORD_MAX = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return value


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    message: str
    code: str
    detail: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# User views
# ---------------------------------------------------------------------------


class UserView(BaseModel):
    """Public shape of a user. There is no password field by construction."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[str] = None


class LoginHistoryView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    logged_in_at: str
    logged_out_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class _ProfileFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstname: Optional[str] = Field(default=None, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    age: Optional[int] = Field(default=None, ge=0, le=150)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=1000)


class RegisterRequest(_ProfileFields):
    """Body for POST /register."""

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    def profile(self) -> dict:
        """Profile fields the caller actually supplied."""
        return self.model_dump(include=set(_ProfileFields.model_fields), exclude_none=True)


class LoginRequest(BaseModel):
    """Body for POST /login. No length rules: a wrong password is just a wrong password."""

    username: str = Field(max_length=255)
    password: str = Field(max_length=255)


class UpdateProfileRequest(_ProfileFields):
    """Body for PATCH /me. Unknown keys are ignored; an empty patch is a 400."""

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class ChangePasswordRequest(BaseModel):
    """Body for PATCH /change-password."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", max_length=255)
    new_password: str = Field(alias="newPassword", min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    user_id: int = Field(alias="userId")


class UserMessageResponse(BaseModel):
    """Message plus the affected user (login, profile update)."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserView
