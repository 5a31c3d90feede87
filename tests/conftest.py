"""Shared test fixtures for passlink."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from passlink.services.mailer import MailError


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

_migrations_dir = Path(__file__).resolve().parent.parent / "passlink" / "db" / "migrations"
MIGRATION_SQL = "\n".join(
    f.read_text() for f in sorted(_migrations_dir.glob("*.sql"))
)

# Stable IDs for seed data
USER_ID = "user-test-001"
USER_EMAIL = "test@example.com"
USER_NAME = "Test User"


@pytest_asyncio.fixture
async def db():
    """In-memory SQLite database with schema + seed data."""
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.executescript(MIGRATION_SQL)
    await conn.execute(
        "INSERT INTO users (id, email, name, verified) VALUES (?, ?, ?, ?)",
        (USER_ID, USER_EMAIL, USER_NAME, 1),
    )
    await conn.commit()
    yield conn
    await conn.close()


# ---------------------------------------------------------------------------
# Mail fixtures
# ---------------------------------------------------------------------------

class RecordingMailer:
    """Mailer double that keeps every message instead of sending it."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send(self, to: str, sender: str, subject: str, text: str) -> None:
        if self.fail:
            raise MailError("connection refused")
        self.sent.append({"to": to, "sender": sender, "subject": subject, "text": text})


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


# ---------------------------------------------------------------------------
# App / client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db, mailer):
    """FastAPI app with test DB and recording mailer injected."""
    from passlink.db import database as db_module
    original_db = db_module._db
    db_module._db = db

    from passlink.main import app as fastapi_app

    ctx = fastapi_app.state.auth
    original_mailer, original_users = ctx.mailer, ctx.users
    ctx.mailer = mailer

    yield fastapi_app

    ctx.mailer, ctx.users = original_mailer, original_users
    db_module._db = original_db


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client for testing; keeps the session cookie between calls."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def fetch_csrf_token(client: AsyncClient, base_path: str = "/auth") -> str:
    resp = await client.get(f"{base_path}/csrf")
    assert resp.status_code == 200
    return resp.json()["csrfToken"]


def token_from_link(text: str) -> str:
    """Pull the sign-in token out of a sign-in email body."""
    for line in text.splitlines():
        if "/email/signin/" in line:
            return line.strip().rsplit("/", 1)[1]
    raise AssertionError(f"No sign-in link in: {text!r}")
