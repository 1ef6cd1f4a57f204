"""Authentication service: signup, login, logout and password changes."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from posauth.models.token_blacklist import RevocationReason
from posauth.models.user import Role, User
from posauth.services.errors import (
    InvalidCredentialsError,
    NotAuthenticatedError,
    StoreError,
    UserInactiveError,
)
from posauth.services.gate import Identity
from posauth.services.passwords import burn_verification_time, verify_password
from posauth.services.revocation import RevocationLedger
from posauth.services.tokens import MalformedTokenError, TokenIssuer
from posauth.services.users import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str
    expires_in: int


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession, issuer: TokenIssuer):
        self.session = session
        self.issuer = issuer
        self.users = UserStore(session)
        self.ledger = RevocationLedger(session)

    async def signup(self, username: str, password: str, role: Role | int) -> User:
        """Register a new account. See UserStore.create for validation rules."""
        return await self.users.create(username=username, password=password, role=role)

    async def authenticate(self, username: str, password: str) -> User:
        """Check credentials and return the user.

        Unknown username and wrong password both raise InvalidCredentialsError
        so callers cannot probe for accounts. An inactive account with correct
        credentials raises UserInactiveError instead; the password is checked
        first so the inactive state is only revealed to someone who knows it.
        """
        user = await self.users.get_by_username(username.strip(), with_password=True)

        if user is None:
            burn_verification_time(password)
            raise InvalidCredentialsError("Invalid username or password")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid username or password")

        if not user.is_active:
            raise UserInactiveError("User account is deactivated")

        await self.users.touch_last_login(user)
        return user

    async def login(self, username: str, password: str) -> LoginResult:
        user = await self.authenticate(username, password)
        token = self.issuer.issue(user.id, user.username, Role(user.role))
        return LoginResult(
            user=user,
            access_token=token,
            expires_in=int(self.issuer.default_ttl.total_seconds()),
        )

    async def logout(self, identity: Identity) -> bool:
        """Revoke the token the caller presented. Safe to repeat."""
        if identity.revoked:
            logger.info(f"Token for {identity.username} was already revoked")
            return False
        return await self.revoke_token(identity.token, identity.user_id, RevocationReason.LOGOUT)

    async def revoke_token(self, token: str, user_id: UUID, reason: RevocationReason) -> bool:
        """Add ``token`` to the ledger until its own expiry claim."""
        expires_at = self.issuer.natural_expiry(token)
        if expires_at is None:
            raise MalformedTokenError("Token carries no readable expiry")

        created = await self.ledger.revoke(token, user_id, expires_at=expires_at, reason=reason)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("Revocation ledger unavailable") from e
        return created

    async def change_password(
        self, identity: Identity, current_password: str, new_password: str
    ) -> None:
        """Change the caller's password and revoke the token used for the request."""
        user = await self.users.get_by_username(identity.username, with_password=True)
        if user is None:
            raise NotAuthenticatedError("unknown_account")

        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        await self.users.set_password(user, new_password)
        await self.revoke_token(identity.token, identity.user_id, RevocationReason.SECURITY)

    async def bootstrap_admin(self, username: str, password: str) -> User | None:
        """Create the initial admin if none exists. Runs once at startup."""
        if await self.users.admin_exists():
            return None
        user = await self.users.create(username=username, password=password, role=Role.ADMIN)
        logger.info(f"Bootstrap admin created: {user.username}")
        return user
