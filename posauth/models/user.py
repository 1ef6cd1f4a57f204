"""User model for back-office staff and administrators."""

from datetime import datetime
from enum import IntEnum

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from posauth.models.base import BaseModel


class Role(IntEnum):
    """Coarse permission tag stored as a numeric code."""

    ADMIN = 99
    STAFF = 89

    @property
    def role_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_name(cls, name: str) -> "Role":
        """Look up a role by its display name ("Admin", "Staff")."""
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown role name: {name!r}") from None


class User(BaseModel):
    """Back-office login account.

    The password hash is a deferred column: ordinary reads never load it and
    response schemas never include it. Only the login path asks for it
    explicitly (see UserStore.get_by_username).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            f"role IN ({Role.ADMIN.value}, {Role.STAFF.value})",
            name="ck_users_role",
        ),
    )

    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, deferred=True)
    role: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def role_name(self) -> str:
        try:
            return Role(self.role).role_name
        except ValueError:
            return "Unknown"

    def __repr__(self) -> str:
        return f"<User {self.username} role={self.role}>"
