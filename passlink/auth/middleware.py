"""Session, CSRF and user-context middleware for FastAPI."""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from passlink.auth.context import AuthContext
from passlink.auth.sessions import SessionManager
from passlink.models.common import error_body
from passlink.services.user_store import StorageError

logger = logging.getLogger(__name__)

SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}

CSRF_HEADER = "x-csrf-token"
CSRF_FIELD = "_csrf"

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class SessionMiddleware(BaseHTTPMiddleware):
    """Attaches request.state.session and saves it after the handler runs."""

    def __init__(self, app, manager: SessionManager):
        super().__init__(app)
        self.manager = manager

    async def dispatch(self, request: Request, call_next):
        session = await self.manager.load(request)
        request.state.session = session
        response = await call_next(request)
        await self.manager.commit(session, response)
        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """Rejects unsafe requests that do not echo the session's CSRF token.

    Must run inside SessionMiddleware.
    """

    def __init__(self, app, exempt_paths: set[str] | None = None):
        super().__init__(app)
        self.exempt_paths = exempt_paths or set()

    async def dispatch(self, request: Request, call_next):
        session = request.state.session
        expected = session.ensure_csrf_token()
        request.state.csrf_token = expected

        if request.method in SAFE_METHODS or request.url.path in self.exempt_paths:
            return await call_next(request)

        provided = request.headers.get(CSRF_HEADER) or await self._form_token(request)
        if not provided or not hmac.compare_digest(provided, expected):
            logger.warning("CSRF check failed: %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=403,
                content=error_body("CSRF_FAILED", "Invalid or missing CSRF token"),
            )
        return await call_next(request)

    @staticmethod
    async def _form_token(request: Request) -> str | None:
        content_type = request.headers.get("content-type", "")
        if not content_type.startswith(FORM_CONTENT_TYPES):
            return None
        # Read the raw body first so the route handler can still parse it
        await request.body()
        form = await request.form()
        token = form.get(CSRF_FIELD)
        return token if isinstance(token, str) else None


class UserContextMiddleware(BaseHTTPMiddleware):
    """Exposes the signed-in user's public profile as request.state.user.

    Reads ctx.users on every request, so swapping the store on the context
    takes effect here too.
    """

    def __init__(self, app, ctx: AuthContext):
        super().__init__(app)
        self.ctx = ctx

    async def dispatch(self, request: Request, call_next):
        request.state.user = None
        user_id = request.state.session.user
        if user_id:
            try:
                user = await self.ctx.users.get(user_id)
            except StorageError:
                logger.warning("Could not load session user %s", user_id, exc_info=True)
                user = None
            if user:
                request.state.user = user.public_profile().model_dump()
        return await call_next(request)
