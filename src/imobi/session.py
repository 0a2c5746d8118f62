"""Active user label persisted next to the property partitions.

This is identification only: any non-empty username is accepted.
"""

from typing import Final

from imobi.logging import get_logger
from imobi.store.local import SqliteKeyValue

logger = get_logger(__name__)

ACTIVE_USER_KEY: Final = "active_user"


class UserSession:
    """Login state stored in the local key-value table."""

    def __init__(self, kv: SqliteKeyValue) -> None:
        self._kv = kv

    async def login(self, username: str) -> str:
        username = username.strip()
        if not username:
            raise ValueError("username must not be empty")
        await self._kv.set(ACTIVE_USER_KEY, username)
        logger.info("user_logged_in", user=username)
        return username

    async def logout(self) -> None:
        await self._kv.delete(ACTIVE_USER_KEY)
        logger.info("user_logged_out")

    async def current_user(self) -> str | None:
        return await self._kv.get(ACTIVE_USER_KEY)

    async def is_authenticated(self) -> bool:
        return bool(await self.current_user())
