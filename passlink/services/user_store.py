"""User record storage: the UserStore contract and its SQLite implementation."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable

import aiosqlite

from passlink.db.database import get_db
from passlink.db.queries import users as user_queries
from passlink.models.user import User


class StorageError(Exception):
    """Raised when the backing store fails to read or write a record."""


@runtime_checkable
class UserStore(Protocol):
    """Interface for user persistence."""

    async def get(self, user_id: str) -> User | None: ...

    async def find_one(self, **filters) -> User | None: ...

    async def create(self, email: str, **fields) -> User: ...

    async def save(self, user: User) -> None: ...


class SQLiteUserStore:
    """Users table accessed through aiosqlite.

    The connection is resolved on every call so the store can be built before
    the database is opened at startup.
    """

    def __init__(self, connect: Callable[[], Awaitable[aiosqlite.Connection]] = get_db) -> None:
        self._connect = connect

    async def get(self, user_id: str) -> User | None:
        try:
            row = await user_queries.get_user(await self._connect(), user_id)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to load user {user_id}: {e}") from e
        return User(**row) if row else None

    async def find_one(self, **filters) -> User | None:
        try:
            row = await user_queries.find_user(await self._connect(), **filters)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to look up user: {e}") from e
        return User(**row) if row else None

    async def create(self, email: str, **fields) -> User:
        try:
            row = await user_queries.create_user(await self._connect(), email, **fields)
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to create user: {e}") from e
        return User(**row)

    async def save(self, user: User) -> None:
        try:
            updated = await user_queries.update_user(
                await self._connect(),
                user.id,
                email=user.email,
                name=user.name,
                token=user.token,
                token_issued_at=user.token_issued_at,
                verified=user.verified,
            )
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to save user {user.id}: {e}") from e
        if not updated:
            raise StorageError(f"User {user.id} no longer exists")
