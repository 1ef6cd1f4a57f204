"""Revoked bearer tokens, kept until their natural expiry."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from posauth.core.database import Base
from posauth.models.base import utcnow


class RevocationReason(StrEnum):
    LOGOUT = "logout"
    SECURITY = "security"
    EXPIRED = "expired"


class TokenBlacklist(Base):
    """A token invalidated before its expiry, keyed by the SHA-256 of its raw value.

    Entries are created on logout or forced invalidation and deleted by the
    sweep once expires_at has passed.
    """

    __tablename__ = "token_blacklist"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RevocationReason.LOGOUT.value
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<TokenBlacklist user_id={self.user_id} reason={self.reason}>"
