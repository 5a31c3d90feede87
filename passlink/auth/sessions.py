"""Server-side session management."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets

from starlette.requests import Request
from starlette.responses import Response

from passlink.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class Session:
    """One client's session state, saved back to the store after each request."""

    def __init__(self, session_id: str, data: dict | None = None, is_new: bool = False) -> None:
        self.id = session_id
        self.data = dict(data or {})
        self.is_new = is_new
        self.previous_id: str | None = None

    @property
    def user(self) -> str | None:
        return self.data.get("user")

    @user.setter
    def user(self, user_id: str | None) -> None:
        if user_id is None:
            self.data.pop("user", None)
        else:
            self.data["user"] = user_id

    def regenerate(self) -> None:
        """Move the session data to a fresh ID; the old one is dropped on commit."""
        if self.previous_id is None and not self.is_new:
            self.previous_id = self.id
        self.id = secrets.token_urlsafe(32)

    @property
    def csrf_token(self) -> str | None:
        return self.data.get("csrf_token")

    def ensure_csrf_token(self) -> str:
        if not self.csrf_token:
            self.data["csrf_token"] = secrets.token_urlsafe(32)
        return self.data["csrf_token"]


class SessionManager:
    """Loads sessions from signed cookies and persists them to a SessionStore."""

    def __init__(
        self,
        secret: str,
        store: SessionStore,
        max_age: int,
        cookie_name: str = "passlink_session",
        secure: bool = False,
    ) -> None:
        self._secret = secret.encode()
        self.store = store
        self.max_age = max_age
        self.cookie_name = cookie_name
        self.secure = secure

    def sign(self, session_id: str) -> str:
        digest = hmac.new(self._secret, session_id.encode(), hashlib.sha256).digest()
        return f"{session_id}.{base64.urlsafe_b64encode(digest).decode().rstrip('=')}"

    def unsign(self, cookie_value: str) -> str | None:
        """Return the session ID if the cookie signature is valid."""
        session_id, _, _ = cookie_value.rpartition(".")
        if not session_id:
            return None
        if not hmac.compare_digest(self.sign(session_id), cookie_value):
            return None
        return session_id

    async def load(self, request: Request) -> Session:
        """Restore the session named by the request cookie, or start a new one."""
        cookie = request.cookies.get(self.cookie_name)
        if cookie:
            session_id = self.unsign(cookie)
            if session_id is None:
                logger.warning("Rejected session cookie with bad signature")
            else:
                data = await self.store.load(session_id)
                if data is not None:
                    return Session(session_id, data)
        return Session(secrets.token_urlsafe(32), is_new=True)

    async def commit(self, session: Session, response: Response) -> None:
        """Save the session and re-issue its cookie, rolling the expiry forward."""
        if session.previous_id:
            await self.store.destroy(session.previous_id)
            session.previous_id = None
        await self.store.save(session.id, session.data, self.max_age)
        response.set_cookie(
            key=self.cookie_name,
            value=self.sign(session.id),
            max_age=self.max_age,
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )
