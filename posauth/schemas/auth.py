"""Pydantic schemas for authentication API.

Field names are snake_case in Python and camelCase on the wire; requests
accept either spelling.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from posauth.models.user import User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(CamelModel):
    """Request to register a new account.

    Only types are checked here; length, charset and composition rules are
    enforced by the credential store so every entry point shares them.
    """

    login_name: str = Field(description="3-50 chars: letters, digits, underscore, hyphen")
    password: str = Field(description="At least 6 chars with upper, lower and digit")
    # Strict: "99" and 99.0 are not role codes
    role: StrictInt = Field(description="99 (Admin) or 89 (Staff)")


class SignupResponse(CamelModel):
    """Response after successful signup. Never includes the password."""

    user_id: UUID
    login_name: str
    role: int
    role_name: str
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "SignupResponse":
        return cls(
            user_id=user.id,
            login_name=user.username,
            role=user.role,
            role_name=user.role_name,
            created_at=user.created_at,
        )


class LoginRequest(CamelModel):
    """Request for login."""

    login_name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginResponse(CamelModel):
    """Access token plus the profile of the user it was issued to."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    user_id: UUID
    login_name: str
    role: int
    role_name: str
    is_active: bool
    created_at: datetime


class UserResponse(CamelModel):
    """Public view of a user account."""

    user_id: UUID
    login_name: str
    role: int
    role_name: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.id,
            login_name=user.username,
            role=user.role,
            role_name=user.role_name,
            is_active=user.is_active,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserListResponse(CamelModel):
    count: int
    users: list[UserResponse]


class UserStatusRequest(CamelModel):
    is_active: bool


class ChangePasswordRequest(CamelModel):
    """Request for password change."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
