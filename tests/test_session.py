"""Tests for the active-user session."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from imobi.session import ACTIVE_USER_KEY, UserSession
from imobi.store import SqliteKeyValue


@pytest_asyncio.fixture
async def kv() -> AsyncGenerator[SqliteKeyValue, None]:
    kv = SqliteKeyValue(":memory:")
    yield kv
    await kv.close()


class TestUserSession:
    @pytest.mark.asyncio
    async def test_starts_logged_out(self, kv: SqliteKeyValue) -> None:
        session = UserSession(kv)
        assert await session.current_user() is None
        assert await session.is_authenticated() is False

    @pytest.mark.asyncio
    async def test_login_strips_and_persists(self, kv: SqliteKeyValue) -> None:
        session = UserSession(kv)
        assert await session.login("  marcos ") == "marcos"
        assert await kv.get(ACTIVE_USER_KEY) == "marcos"
        assert await UserSession(kv).current_user() == "marcos"
        assert await session.is_authenticated() is True

    @pytest.mark.asyncio
    async def test_any_name_accepted(self, kv: SqliteKeyValue) -> None:
        session = UserSession(kv)
        await session.login("Ana")
        await session.login("joão.silva")
        assert await session.current_user() == "joão.silva"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username", ["", "   "])
    async def test_empty_name_rejected(self, kv: SqliteKeyValue, username: str) -> None:
        session = UserSession(kv)
        with pytest.raises(ValueError, match="must not be empty"):
            await session.login(username)
        assert await session.current_user() is None

    @pytest.mark.asyncio
    async def test_logout(self, kv: SqliteKeyValue) -> None:
        session = UserSession(kv)
        await session.login("ana")
        await session.logout()
        assert await session.current_user() is None
        await session.logout()
