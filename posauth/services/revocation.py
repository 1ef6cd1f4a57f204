"""Revocation ledger: tokens invalidated before their natural expiry."""

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from posauth.models.base import utcnow
from posauth.models.token_blacklist import RevocationReason, TokenBlacklist
from posauth.services.errors import StoreError

logger = logging.getLogger(__name__)


def token_digest(token: str) -> str:
    """SHA-256 hex digest used as the ledger key; raw tokens are never stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RevocationLedger:
    """Negative cache of revoked tokens backed by the token_blacklist table.

    The ledger does not commit; callers own the transaction.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self._clock = clock

    async def revoke(
        self,
        token: str,
        user_id: UUID,
        expires_at: datetime,
        reason: RevocationReason = RevocationReason.LOGOUT,
    ) -> bool:
        """Record ``token`` as revoked until ``expires_at``.

        Idempotent: returns True if a new entry was written and False if the
        token was already revoked. Both outcomes are success.
        """
        values = {
            "token_hash": token_digest(token),
            "user_id": user_id,
            "reason": RevocationReason(reason).value,
            "expires_at": expires_at,
            "created_at": self._clock(),
        }
        try:
            created = await self._insert_ignoring_duplicates(values)
        except SQLAlchemyError as e:
            raise StoreError("Revocation ledger unavailable") from e

        if created:
            logger.info(f"Token revoked for user {user_id} (reason={values['reason']})")
        else:
            logger.info(f"Token for user {user_id} was already revoked")
        return created

    async def _insert_ignoring_duplicates(self, values: dict[str, Any]) -> bool:
        dialect = self.session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = (
                dialect_insert(TokenBlacklist)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["token_hash"])
                .returning(TokenBlacklist.token_hash)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none() is not None

        # Other backends: savepoint so a lost race does not poison the outer transaction
        try:
            async with self.session.begin_nested():
                await self.session.execute(insert(TokenBlacklist).values(**values))
        except IntegrityError:
            return False
        return True

    async def is_revoked(self, token: str) -> bool:
        """Check whether ``token`` has an unexpired revocation entry."""
        stmt = select(TokenBlacklist.token_hash).where(
            TokenBlacklist.token_hash == token_digest(token),
            TokenBlacklist.expires_at > self._clock(),
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError("Revocation ledger unavailable") from e
        return result.scalar_one_or_none() is not None

    async def sweep_expired(self) -> int:
        """Remove entries whose token would already fail on expiry. Returns count removed."""
        try:
            result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
                delete(TokenBlacklist).where(TokenBlacklist.expires_at <= self._clock())
            )
        except SQLAlchemyError as e:
            raise StoreError("Revocation ledger unavailable") from e
        return result.rowcount
