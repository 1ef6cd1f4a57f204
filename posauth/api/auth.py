"""Authentication API endpoints."""

import logging
import time
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from posauth.api.deps import get_current_identity, get_logout_identity, require_admin
from posauth.core import get_db, settings
from posauth.core.request_utils import get_client_ip, get_user_agent
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
from posauth.services.auth import AuthService
from posauth.services.errors import (
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidIdentifierError,
    UserInactiveError,
)
from posauth.services.gate import Identity
from posauth.services.tokens import TokenIssuer, get_token_issuer
from posauth.services.users import UserStore

logger = logging.getLogger(__name__)

# Failed login attempts per client IP (monotonic timestamps)
_login_attempts: dict[str, list[float]] = defaultdict(list)

INVALID_CREDENTIALS_DETAIL = "Invalid credentials"
INACTIVE_ACCOUNT_DETAIL = "Account is inactive. Please contact administrator."


def _check_login_rate_limit(client_ip: str) -> None:
    """Check if a client IP has exceeded the login attempt rate limit."""
    now = time.monotonic()
    window = settings.login_rate_limit_window_seconds
    _login_attempts[client_ip] = [t for t in _login_attempts[client_ip] if now - t < window]
    if len(_login_attempts[client_ip]) >= settings.login_rate_limit_attempts:
        logger.warning("Login rate limit exceeded for %s", client_ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
        )


def _record_login_attempt(client_ip: str) -> None:
    """Record a failed login attempt for rate limiting."""
    _login_attempts[client_ip].append(time.monotonic())


router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db, issuer)


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def signup(
    body: SignupRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> SignupResponse:
    """Register a new user.

    Returns 409 if the login name is taken and 422 with field-level
    messages if the input is invalid.
    """
    client_ip = get_client_ip(request)
    logger.info(f"Signup attempt: {body.login_name} (role={body.role}) from {client_ip}")
    try:
        user = await auth_service.signup(
            username=body.login_name,
            password=body.password,
            role=body.role,
        )
    except DuplicateUsernameError as e:
        logger.warning(f"Signup failed, username exists: {body.login_name} from {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already exists",
        ) from e
    return SignupResponse.from_user(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """Authenticate and get an access token.

    Rate limited per client IP; only failed attempts count.
    """
    client_ip = get_client_ip(request) or "unknown"
    _check_login_rate_limit(client_ip)

    try:
        result = await auth_service.login(username=body.login_name, password=body.password)
    except InvalidCredentialsError as e:
        _record_login_attempt(client_ip)
        logger.warning(f"Login failed for {body.login_name} from {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS_DETAIL,
        ) from e
    except UserInactiveError as e:
        _record_login_attempt(client_ip)
        logger.warning(f"Login refused, account inactive: {body.login_name} from {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=INACTIVE_ACCOUNT_DETAIL,
        ) from e

    user = result.user
    logger.info(
        f"User logged in: {user.username} ({user.role_name}) from {client_ip}",
        extra={
            "context": {
                "user_id": str(user.id),
                "client_ip": client_ip,
                "user_agent": get_user_agent(request),
            }
        },
    )
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        user_id=user.id,
        login_name=user.username,
        role=user.role,
        role_name=user.role_name,
        is_active=user.is_active,
        created_at=user.created_at,
    )


# GET is kept for terminals that log out with a plain link
@router.api_route("/logout", methods=["POST", "GET"], response_model=MessageResponse)
async def logout(
    identity: Identity = Depends(get_logout_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Log out by revoking the presented token for the rest of its lifetime.

    Idempotent: logging out again with the same token still succeeds.
    """
    await auth_service.logout(identity)
    logger.info(f"User logged out: {identity.username}")
    return MessageResponse(message="Logout successful")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the current user's password.

    The token used for this request is revoked; the user must log in again.
    """
    try:
        await auth_service.change_password(
            identity=identity,
            current_password=body.current_password,
            new_password=body.new_password,
        )
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        ) from e
    return MessageResponse(message="Password changed successfully")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get the current user's information."""
    user = await UserStore(db).get_by_id(identity.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.from_user(user)


@router.get("/profile/{user_id}", response_model=UserResponse)
async def get_profile(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get a user profile by ID."""
    try:
        user = await UserStore(db).get_by_id(user_id)
    except InvalidIdentifierError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user ID"
        ) from e
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.from_user(user)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    """List all users, newest first (Admin only)."""
    users = await UserStore(db).list_all(newest_first=True)
    logger.info(f"User list requested by {identity.username}: {len(users)} users")
    return UserListResponse(
        count=len(users),
        users=[UserResponse.from_user(user) for user in users],
    )


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    user_id: str,
    body: UserStatusRequest,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Activate or deactivate an account (Admin only).

    A deactivated account is refused at login and by the authentication gate.
    """
    store = UserStore(db)
    try:
        user = await store.get_by_id(user_id)
    except InvalidIdentifierError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user ID"
        ) from e
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == identity.user_id and not body.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account",
        )

    user = await store.set_active(user, body.is_active)
    return UserResponse.from_user(user)


def reset_login_attempts() -> None:
    """Clear the login throttle (used by tests)."""
    _login_attempts.clear()

