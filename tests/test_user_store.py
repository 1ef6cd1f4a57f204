"""Tests for the credential store."""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from posauth.models.user import Role, User
from posauth.services.errors import (
    DuplicateUsernameError,
    InvalidIdentifierError,
    StoreError,
    ValidationError,
)
from posauth.services.passwords import verify_password
from posauth.services.users import (
    UserStore,
    parse_user_id,
    validate_password,
    validate_role,
    validate_username,
)


async def _user_count(db_session) -> int:
    result = await db_session.execute(select(func.count(User.id)))
    return result.scalar()


class TestValidators:
    """Tests for the field validators shared by every entry point."""

    @pytest.mark.parametrize("username", ["abc", "alice123", "a_b-c", "x" * 50])
    def test_valid_usernames(self, username):
        assert validate_username(username) == []

    @pytest.mark.parametrize(
        "username", ["ab", "x" * 51, "alice smith", "alice@pos", "名前です"]
    )
    def test_invalid_usernames(self, username):
        errors = validate_username(username)
        assert errors
        assert all(e.field == "loginName" for e in errors)

    @pytest.mark.parametrize("username", [None, "", 123])
    def test_username_required(self, username):
        assert validate_username(username)[0].message == "Username is required"

    def test_valid_password(self):
        assert validate_password("Secret1") == []

    @pytest.mark.parametrize(
        "password",
        [
            "Sec1",
            "secret1",
            "SECRET1",
            "Secrets",
            "S" * 127 + "e1",
            "\u00c0\u00c0\u00c0\u00e0\u00e0\u00e01",
            "Abcdef\u0661",
            "\uff21\uff42\uff43\uff44\uff45F\uff11",
            "Abcdef\u00b2",
        ],
    )
    def test_invalid_passwords(self, password):
        assert validate_password(password)

    def test_password_error_field_name(self):
        assert validate_password("x", field="newPassword")[0].field == "newPassword"

    @pytest.mark.parametrize("role", [99, 89, Role.ADMIN, Role.STAFF])
    def test_valid_roles(self, role):
        assert validate_role(role) == []

    @pytest.mark.parametrize("role", [0, 1, 90, 100, True, "99", None])
    def test_invalid_roles(self, role):
        assert validate_role(role)[0].field == "role"


class TestParseUserId:
    def test_accepts_uuid_and_string(self):
        user_id = uuid.uuid4()
        assert parse_user_id(user_id) == user_id
        assert parse_user_id(str(user_id)) == user_id

    @pytest.mark.parametrize("value", ["", "42", "not-a-uuid"])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidIdentifierError):
            parse_user_id(value)


@pytest.mark.asyncio
class TestCreate:
    """Tests for UserStore.create."""

    async def test_create_user(self, db_session):
        user = await UserStore(db_session).create("alice123", "Secret1", Role.STAFF)

        assert isinstance(user.id, uuid.UUID)
        assert user.username == "alice123"
        assert user.role == Role.STAFF
        assert user.role_name == "Staff"
        assert user.is_active is True
        assert user.created_at is not None
        assert user.last_login_at is None

    async def test_password_stored_hashed(self, db_session):
        user = await UserStore(db_session).create("alice123", "Secret1", Role.STAFF)

        loaded = await UserStore(db_session).get_by_username(user.username, with_password=True)
        assert loaded.password_hash != "Secret1"
        assert verify_password("Secret1", loaded.password_hash) is True

    async def test_username_is_trimmed(self, db_session):
        user = await UserStore(db_session).create("  alice123  ", "Secret1", Role.STAFF)
        assert user.username == "alice123"

    async def test_duplicate_username(self, db_session, staff_user):
        with pytest.raises(DuplicateUsernameError):
            await UserStore(db_session).create(staff_user.username, "Other12", Role.ADMIN)
        assert await _user_count(db_session) == 1

    async def test_concurrent_signups_same_name(self, db_engine, db_session):
        sessions = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

        async def _signup(password: str):
            async with sessions() as session:
                return await UserStore(session).create("alice123", password, Role.STAFF)

        results = await asyncio.gather(
            _signup("Secret1"), _signup("Other12"), return_exceptions=True
        )

        assert sum(isinstance(r, User) for r in results) == 1
        assert sum(isinstance(r, DuplicateUsernameError) for r in results) == 1
        assert await _user_count(db_session) == 1

    async def test_username_is_case_sensitive(self, db_session, staff_user):
        user = await UserStore(db_session).create(staff_user.username.upper(), "Secret1", 89)
        assert user.id != staff_user.id

    async def test_validation_collects_all_errors(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await UserStore(db_session).create("ab", "weak", 7)

        fields = {e.field for e in exc_info.value.errors}
        assert fields == {"loginName", "password", "role"}

    async def test_rejected_signup_writes_nothing(self, db_session):
        with pytest.raises(ValidationError):
            await UserStore(db_session).create("alice123", "weak", Role.STAFF)
        assert await _user_count(db_session) == 0

    async def test_store_failure_raises_store_error(self):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(StoreError):
            await UserStore(session).create("alice123", "Secret1", Role.STAFF)


@pytest.mark.asyncio
class TestLookups:
    """Tests for UserStore reads."""

    async def test_get_by_username(self, db_session, staff_user):
        store = UserStore(db_session)
        assert (await store.get_by_username(staff_user.username)).id == staff_user.id
        assert await store.get_by_username("nobody") is None

    async def test_get_by_id(self, db_session, staff_user):
        store = UserStore(db_session)
        assert (await store.get_by_id(staff_user.id)).username == staff_user.username
        assert (await store.get_by_id(str(staff_user.id))).id == staff_user.id
        assert await store.get_by_id(uuid.uuid4()) is None

    async def test_get_by_id_malformed(self, db_session):
        with pytest.raises(InvalidIdentifierError):
            await UserStore(db_session).get_by_id("not-a-uuid")

    async def test_list_all_newest_first(self, db_session, user_factory):
        first = await user_factory(username="first01")
        second = await user_factory(username="second02")
        third = await user_factory(username="third03")

        users = await UserStore(db_session).list_all()
        assert [u.id for u in users] == [third.id, second.id, first.id]

        oldest_first = await UserStore(db_session).list_all(newest_first=False)
        assert [u.id for u in oldest_first] == [first.id, second.id, third.id]

    async def test_admin_exists(self, db_session, staff_user, user_factory):
        store = UserStore(db_session)
        assert await store.admin_exists() is False
        await user_factory(username="boss01", role=Role.ADMIN)
        assert await store.admin_exists() is True


@pytest.mark.asyncio
class TestUpdates:
    """Tests for UserStore writes on existing accounts."""

    async def test_set_password(self, db_session, staff_user):
        store = UserStore(db_session)
        await store.set_password(staff_user, "NewSecret2")

        loaded = await store.get_by_username(staff_user.username, with_password=True)
        assert verify_password("NewSecret2", loaded.password_hash) is True
        assert verify_password("Secret1", loaded.password_hash) is False

    async def test_set_password_validates(self, db_session, staff_user):
        with pytest.raises(ValidationError) as exc_info:
            await UserStore(db_session).set_password(staff_user, "short")
        assert exc_info.value.errors[0].field == "newPassword"

    async def test_set_active(self, db_session, staff_user):
        store = UserStore(db_session)
        await store.set_active(staff_user, False)
        assert (await store.get_by_id(staff_user.id)).is_active is False
        await store.set_active(staff_user, True)
        assert (await store.get_by_id(staff_user.id)).is_active is True

    async def test_touch_last_login(self, db_session, staff_user):
        await UserStore(db_session).touch_last_login(staff_user)
        assert staff_user.last_login_at is not None
