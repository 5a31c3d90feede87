from __future__ import annotations

import uuid

import aiosqlite

# Columns a caller may look users up by
FILTER_COLUMNS = ("id", "email", "token")


async def get_user(db: aiosqlite.Connection, user_id: str) -> dict | None:
    async with db.execute("SELECT * FROM users WHERE id = ?", (user_id,)) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None


async def find_user(db: aiosqlite.Connection, **filters) -> dict | None:
    """Return the first user matching every filter, or None."""
    if not filters:
        raise ValueError("At least one filter is required")
    unknown = set(filters) - set(FILTER_COLUMNS)
    if unknown:
        raise ValueError(f"Cannot filter users by: {', '.join(sorted(unknown))}")

    clauses = " AND ".join(f"{column} = ?" for column in filters)
    async with db.execute(
        f"SELECT * FROM users WHERE {clauses} LIMIT 1", tuple(filters.values())
    ) as cursor:
        row = await cursor.fetchone()
        return dict(row) if row else None


async def create_user(
    db: aiosqlite.Connection,
    email: str,
    name: str | None = None,
    token: str | None = None,
    token_issued_at: str | None = None,
    verified: bool = False,
) -> dict:
    user_id = str(uuid.uuid4())
    await db.execute(
        """INSERT INTO users (id, email, name, token, token_issued_at, verified)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (user_id, email, name, token, token_issued_at, int(verified)),
    )
    await db.commit()
    return await get_user(db, user_id)


async def update_user(
    db: aiosqlite.Connection,
    user_id: str,
    email: str,
    name: str | None,
    token: str | None,
    token_issued_at: str | None,
    verified: bool,
) -> bool:
    result = await db.execute(
        """UPDATE users SET email=?, name=?, token=?, token_issued_at=?, verified=?
           WHERE id=?""",
        (email, name, token, token_issued_at, int(verified), user_id),
    )
    await db.commit()
    return result.rowcount > 0
