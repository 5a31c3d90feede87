"""Attach email-link authentication to a FastAPI app."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from passlink.api.auth import create_auth_router
from passlink.auth.context import AuthContext
from passlink.auth.middleware import CSRFMiddleware, SessionMiddleware, UserContextMiddleware
from passlink.auth.sessions import SessionManager
from passlink.config import ConfigurationError, Settings, settings as default_settings
from passlink.models.common import error_body
from passlink.services.mailer import Mailer, get_mailer
from passlink.services.session_store import SessionStore, get_session_store
from passlink.services.user_store import StorageError, UserStore

logger = logging.getLogger(__name__)


async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content=error_body("STORAGE_UNAVAILABLE", "User storage is unavailable"),
    )


def configure_auth(
    app: FastAPI,
    users: UserStore | None,
    settings: Settings | None = None,
    store: SessionStore | None = None,
    mailer: Mailer | None = None,
) -> AuthContext:
    """Install sessions, CSRF protection and the auth routes on `app`.

    Raises ConfigurationError when no user store is given.
    """
    if users is None:
        raise ConfigurationError("A user store is a required option")

    settings = settings or default_settings
    manager = SessionManager(
        secret=settings.session_secret,
        store=store or get_session_store(),
        max_age=settings.session_max_age,
        cookie_name=settings.session_cookie_name,
        secure=settings.session_cookie_secure,
    )
    ctx = AuthContext.from_settings(settings, users, mailer or get_mailer(), manager)
    app.state.auth = ctx

    # Starlette LIFO: last added runs outermost.
    # We want: request → Session → CSRF → UserContext → route handlers
    app.add_middleware(UserContextMiddleware, ctx=ctx)
    app.add_middleware(CSRFMiddleware, exempt_paths=settings.csrf_exempt_path_set)
    app.add_middleware(SessionMiddleware, manager=manager)

    app.add_exception_handler(StorageError, _storage_error_handler)
    app.include_router(create_auth_router(ctx.base_path))

    logger.info("Email sign-in mounted at %s", ctx.base_path)
    return ctx
