"""Credential store: persistence and validation of user accounts."""

import logging
import re
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer

from posauth.models.user import Role, User
from posauth.services.errors import (
    DuplicateUsernameError,
    FieldError,
    InvalidIdentifierError,
    StoreError,
    ValidationError,
)
from posauth.services.passwords import hash_password

logger = logging.getLogger(__name__)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
# ASCII classes only; Unicode letters and digits do not count towards composition
PASSWORD_CLASSES = (re.compile(r"[a-z]"), re.compile(r"[A-Z]"), re.compile(r"[0-9]"))


def validate_username(username: Any) -> list[FieldError]:
    if not isinstance(username, str) or not username:
        return [FieldError("loginName", "Username is required")]
    errors = []
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        errors.append(
            FieldError(
                "loginName",
                f"Username must be between {USERNAME_MIN_LENGTH} and "
                f"{USERNAME_MAX_LENGTH} characters",
            )
        )
    if not USERNAME_PATTERN.match(username):
        errors.append(
            FieldError(
                "loginName",
                "Username can only contain letters, numbers, underscores, and hyphens",
            )
        )
    return errors


def validate_password(password: Any, field: str = "password") -> list[FieldError]:
    if not isinstance(password, str) or not password:
        return [FieldError(field, "Password is required")]
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(
            FieldError(field, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
        )
    elif len(password) > PASSWORD_MAX_LENGTH:
        errors.append(
            FieldError(field, f"Password cannot exceed {PASSWORD_MAX_LENGTH} characters")
        )
    if not all(pattern.search(password) for pattern in PASSWORD_CLASSES):
        errors.append(
            FieldError(
                field,
                "Password must contain at least one uppercase letter, "
                "one lowercase letter, and one number",
            )
        )
    return errors


def validate_role(role: Any) -> list[FieldError]:
    # bool is an int subclass; True must not pass as a role code
    if isinstance(role, bool) or role not in (Role.ADMIN, Role.STAFF):
        return [FieldError("role", "Role must be either 99 (Admin) or 89 (Staff)")]
    return []


def parse_user_id(user_id: UUID | str) -> UUID:
    if isinstance(user_id, UUID):
        return user_id
    try:
        return UUID(str(user_id))
    except ValueError as e:
        raise InvalidIdentifierError(f"Invalid user ID: {user_id!r}") from e


class UserStore:
    """Reads and writes User rows.

    Driver errors are translated: unique violations become
    DuplicateUsernameError and anything else becomes StoreError.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, stmt: Any) -> Any:
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError("Credential store unavailable") from e

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("Credential store unavailable") from e

    async def create(self, username: str, password: str, role: Role | int) -> User:
        """Validate, hash and persist a new account.

        All validation happens before the first write, so a rejected signup
        leaves no trace in the database.
        """
        username = username.strip() if isinstance(username, str) else username
        errors = validate_username(username) + validate_password(password) + validate_role(role)
        if errors:
            raise ValidationError(errors)

        if await self.get_by_username(username) is not None:
            raise DuplicateUsernameError("Username already exists")

        user = User(
            username=username,
            password_hash=hash_password(password),
            role=int(role),
            is_active=True,
        )
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent signup for the same name
            await self.session.rollback()
            raise DuplicateUsernameError("Username already exists") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError("Credential store unavailable") from e

        await self.session.refresh(user)
        logger.info(f"Created user: {user.username} (role={user.role_name})")
        return user

    async def get_by_username(self, username: str, *, with_password: bool = False) -> User | None:
        """Get user by exact (case-sensitive) login name.

        ``with_password`` loads the deferred hash column for the login path.
        """
        stmt = select(User).where(User.username == username)
        if with_password:
            stmt = stmt.options(undefer(User.password_hash)).execution_options(
                populate_existing=True
            )
        result = await self._execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, user_id: UUID | str) -> User | None:
        """Get user by ID. Raises InvalidIdentifierError for a malformed ID."""
        result = await self._execute(select(User).where(User.id == parse_user_id(user_id)))
        return result.scalar_one_or_none()

    async def list_all(self, newest_first: bool = True) -> list[User]:
        order = User.created_at.desc() if newest_first else User.created_at.asc()
        result = await self._execute(select(User).order_by(order))
        return list(result.scalars().all())

    async def admin_exists(self) -> bool:
        """Check if any admin account exists."""
        result = await self._execute(select(func.count(User.id)).where(User.role == Role.ADMIN))
        return (result.scalar() or 0) > 0

    async def set_password(self, user: User, new_password: str) -> None:
        """Re-hash and store a new password. The only path that rewrites the hash."""
        errors = validate_password(new_password, field="newPassword")
        if errors:
            raise ValidationError(errors)
        user.password_hash = hash_password(new_password)
        await self._commit()
        logger.info(f"Password changed for user: {user.username}")

    async def set_active(self, user: User, is_active: bool) -> User:
        user.is_active = is_active
        await self._commit()
        logger.info(f"User {user.username} {'activated' if is_active else 'deactivated'}")
        return user

    async def touch_last_login(self, user: User) -> None:
        user.last_login_at = datetime.now(UTC)
        await self._commit()
