"""Explicit configuration shared by the auth middleware and routes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates

from passlink.auth.sessions import SessionManager
from passlink.config import Settings
from passlink.services.mailer import Mailer
from passlink.services.user_store import UserStore

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


@dataclass
class AuthContext:
    users: UserStore
    mailer: Mailer
    sessions: SessionManager
    templates: Jinja2Templates
    base_path: str = "/auth"
    pages: str = "auth"
    client_max_age: int = 60000
    server_url: str = ""
    mail_from: str = ""
    token_max_age: int = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        users: UserStore,
        mailer: Mailer,
        sessions: SessionManager,
    ) -> AuthContext:
        templates_dir = settings.templates_dir or str(DEFAULT_TEMPLATES_DIR)
        return cls(
            users=users,
            mailer=mailer,
            sessions=sessions,
            templates=Jinja2Templates(directory=templates_dir),
            base_path=settings.auth_base_path.rstrip("/"),
            pages=settings.auth_pages.strip("/"),
            client_max_age=settings.client_max_age,
            server_url=settings.server_url.rstrip("/"),
            mail_from=settings.mail_from,
            token_max_age=settings.sign_in_token_max_age,
        )

    def page(self, name: str) -> str:
        return f"{self.pages}/{name}.html"


def get_auth_context(request: Request) -> AuthContext:
    """FastAPI dependency: the context configure_auth stored on the app."""
    return request.app.state.auth
