"""Tests for the revocation ledger."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from posauth.models.token_blacklist import RevocationReason, TokenBlacklist
from posauth.services.errors import StoreError
from posauth.services.revocation import RevocationLedger, token_digest


def _in(**kwargs) -> datetime:
    return datetime.now(UTC) + timedelta(**kwargs)


async def _entry_count(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(TokenBlacklist))
    return result.scalar()


class TestTokenDigest:
    def test_digest_is_sha256_hex(self):
        digest = token_digest("a.b.c")
        assert len(digest) == 64
        assert digest == token_digest("a.b.c")
        assert digest != token_digest("a.b.d")


@pytest.mark.asyncio
class TestRevoke:
    """Tests for RevocationLedger.revoke."""

    async def test_revoke_then_is_revoked(self, db_session, staff_user, staff_token):
        ledger = RevocationLedger(db_session)

        assert await ledger.is_revoked(staff_token) is False
        assert await ledger.revoke(staff_token, staff_user.id, _in(hours=1)) is True
        await db_session.commit()

        assert await ledger.is_revoked(staff_token) is True

    async def test_raw_token_never_stored(self, db_session, staff_user, staff_token):
        ledger = RevocationLedger(db_session)
        await ledger.revoke(staff_token, staff_user.id, _in(hours=1))
        await db_session.commit()

        result = await db_session.execute(select(TokenBlacklist.token_hash))
        assert result.scalars().all() == [token_digest(staff_token)]

    async def test_revoke_is_idempotent(self, db_session, staff_user, staff_token):
        ledger = RevocationLedger(db_session)

        assert await ledger.revoke(staff_token, staff_user.id, _in(hours=1)) is True
        await db_session.commit()
        assert await ledger.revoke(staff_token, staff_user.id, _in(hours=1)) is False
        await db_session.commit()

        assert await _entry_count(db_session) == 1
        assert await ledger.is_revoked(staff_token) is True

    async def test_concurrent_revokes_of_same_token(
        self, db_engine, db_session, staff_user, staff_token
    ):
        sessions = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
        expires_at = _in(hours=1)

        async def _revoke() -> bool:
            async with sessions() as session:
                created = await RevocationLedger(session).revoke(
                    staff_token, staff_user.id, expires_at
                )
                await session.commit()
                return created

        results = await asyncio.gather(_revoke(), _revoke())

        assert sorted(results) == [False, True]
        assert await _entry_count(db_session) == 1
        assert await RevocationLedger(db_session).is_revoked(staff_token) is True

    async def test_reason_recorded(self, db_session, staff_user, staff_token):
        ledger = RevocationLedger(db_session)
        await ledger.revoke(
            staff_token, staff_user.id, _in(hours=1), reason=RevocationReason.SECURITY
        )
        await db_session.commit()

        entry = await db_session.get(TokenBlacklist, token_digest(staff_token))
        assert entry.reason == "security"
        assert entry.user_id == staff_user.id

    async def test_other_tokens_unaffected(self, db_session, staff_user, token_for):
        first = token_for(staff_user)
        second = token_for(staff_user)
        ledger = RevocationLedger(db_session)

        await ledger.revoke(first, staff_user.id, _in(hours=1))
        await db_session.commit()

        assert await ledger.is_revoked(first) is True
        assert await ledger.is_revoked(second) is False

    async def test_store_failure_raises_store_error(self, staff_user):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "sqlite"
        session.execute = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down")))

        with pytest.raises(StoreError):
            await RevocationLedger(session).revoke("a.b.c", staff_user.id, _in(hours=1))


@pytest.mark.asyncio
class TestExpiry:
    """Entries lapse with the token they cover."""

    async def test_expired_entry_not_reported(self, db_session, staff_user, staff_token):
        ledger = RevocationLedger(db_session)
        await ledger.revoke(staff_token, staff_user.id, _in(seconds=-1))
        await db_session.commit()

        assert await ledger.is_revoked(staff_token) is False

    async def test_sweep_removes_only_expired(self, db_session, staff_user, token_for):
        expired = token_for(staff_user)
        live = token_for(staff_user)
        ledger = RevocationLedger(db_session)

        await ledger.revoke(expired, staff_user.id, _in(minutes=-5))
        await ledger.revoke(live, staff_user.id, _in(hours=1))
        await db_session.commit()

        removed = await ledger.sweep_expired()
        await db_session.commit()

        assert removed == 1
        assert await _entry_count(db_session) == 1
        assert await ledger.is_revoked(live) is True

    async def test_sweep_with_injected_clock(self, db_session, staff_user, staff_token):
        await RevocationLedger(db_session).revoke(staff_token, staff_user.id, _in(hours=1))
        await db_session.commit()

        later = RevocationLedger(db_session, clock=lambda: _in(hours=2))
        assert await later.is_revoked(staff_token) is False
        assert await later.sweep_expired() == 1
        await db_session.commit()
        assert await _entry_count(db_session) == 0

    async def test_sweep_empty_ledger(self, db_session):
        assert await RevocationLedger(db_session).sweep_expired() == 0

    async def test_is_revoked_store_failure(self):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(StoreError):
            await RevocationLedger(session).is_revoked("a.b.c")
