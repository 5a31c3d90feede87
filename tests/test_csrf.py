"""Tests for CSRF protection, user-context enrichment and startup checks."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from passlink.auth.setup import configure_auth
from passlink.config import ConfigurationError, Settings
from passlink.models.user import User
from passlink.services.session_store import MemorySessionStore
from passlink.services.user_store import SQLiteUserStore, StorageError
from tests.conftest import RecordingMailer, fetch_csrf_token


def _build_app(users, **overrides) -> FastAPI:
    app = FastAPI()
    configure_auth(
        app,
        users=users,
        settings=Settings(**overrides),
        store=MemorySessionStore(),
        mailer=RecordingMailer(),
    )

    @app.post("/echo")
    async def echo(request: Request):
        form = await request.form()
        return {"value": form.get("value")}

    @app.get("/whoami")
    async def whoami(request: Request):
        return {"user": request.state.user}

    return app


def _sqlite_users(db) -> SQLiteUserStore:
    async def connect():
        return db
    return SQLiteUserStore(connect=connect)


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_post_without_token_rejected(client, mailer):
    resp = await client.post("/auth/email/signin", data={"email": "eve@example.com"})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "CSRF_FAILED"
    # Rejected before the handler ran
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_post_with_wrong_token_rejected(client):
    await fetch_csrf_token(client)
    resp = await client.post("/auth/signout", headers={"X-CSRF-Token": "wrong"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_token_from_other_session_rejected(app, client):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as other:
        foreign = await fetch_csrf_token(other)
    await fetch_csrf_token(client)
    resp = await client.post("/auth/signout", data={"_csrf": foreign})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_form_body_still_readable_by_handler(db):
    async with _client(_build_app(_sqlite_users(db))) as client:
        csrf = await fetch_csrf_token(client)
        resp = await client.post("/echo", data={"_csrf": csrf, "value": "kept"})
    assert resp.status_code == 200
    assert resp.json() == {"value": "kept"}


@pytest.mark.asyncio
async def test_exempt_path_skips_check(db):
    app = _build_app(_sqlite_users(db), csrf_exempt_paths="/echo, /other")
    async with _client(app) as client:
        resp = await client.post("/echo", data={"value": "x"})
        assert resp.status_code == 200
        resp = await client.post("/auth/signout")
        assert resp.status_code == 403


@pytest.mark.asyncio
async def test_custom_base_path(db):
    app = _build_app(_sqlite_users(db), auth_base_path="/login/")
    async with _client(app) as client:
        csrf = await fetch_csrf_token(client, base_path="/login")
        resp = await client.post("/login/signout", data={"_csrf": csrf})
        assert resp.status_code == 302
        resp = await client.get("/login/email/signin")
        assert resp.headers["location"] == "/login/signin"


@pytest.mark.asyncio
async def test_user_context_survives_storage_failure():
    users = AsyncMock()
    users.get.side_effect = StorageError("database is locked")
    app = _build_app(users)
    ctx = app.state.auth

    await ctx.sessions.store.save("sid-1", {"user": "u1"}, ttl_seconds=60)
    async with _client(app) as client:
        client.cookies.set(ctx.sessions.cookie_name, ctx.sessions.sign("sid-1"))
        resp = await client.get("/whoami")
    assert resp.status_code == 200
    assert resp.json() == {"user": None}


@pytest.mark.asyncio
async def test_user_context_follows_store_swapped_on_context():
    app = _build_app(AsyncMock())
    ctx = app.state.auth
    swapped = AsyncMock()
    swapped.get.return_value = User(id="u9", email="swap@example.com", name="Swapped")
    ctx.users = swapped

    await ctx.sessions.store.save("sid-9", {"user": "u9"}, ttl_seconds=60)
    async with _client(app) as client:
        client.cookies.set(ctx.sessions.cookie_name, ctx.sessions.sign("sid-9"))
        resp = await client.get("/whoami")
    assert resp.json() == {"user": {"name": "Swapped", "email": "swap@example.com"}}
    swapped.get.assert_awaited_with("u9")


def test_configure_requires_user_store():
    with pytest.raises(ConfigurationError):
        configure_auth(FastAPI(), users=None, store=MemorySessionStore(), mailer=RecordingMailer())
