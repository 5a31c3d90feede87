from __future__ import annotations

from pydantic import BaseModel, EmailStr


class User(BaseModel):
    id: str
    email: str
    name: str | None = None
    token: str | None = None
    token_issued_at: str | None = None
    verified: bool = False
    created_at: str | None = None

    def public_profile(self) -> PublicUser:
        return PublicUser(name=self.name, email=self.email)


class PublicUser(BaseModel):
    """The only user fields ever exposed to clients."""

    name: str | None = None
    email: str


class SignInRequest(BaseModel):
    email: EmailStr
