# posauth Pydantic Schemas
from posauth.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SignupRequest,
    SignupResponse,
    UserListResponse,
    UserResponse,
    UserStatusRequest,
)

__all__ = [
    "ChangePasswordRequest",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "SignupRequest",
    "SignupResponse",
    "UserListResponse",
    "UserResponse",
    "UserStatusRequest",
]
