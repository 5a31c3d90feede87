"""Email-link sign-in flows.

Each flow is a plain coroutine over an AuthContext and the caller's Session,
so it can be exercised without an HTTP server. Routes in passlink.api.auth
turn the results into pages, redirects and JSON.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from passlink.auth.context import AuthContext
from passlink.auth.sessions import Session
from passlink.models.user import SignInRequest
from passlink.services.mailer import MailError
from passlink.services.user_store import StorageError

logger = logging.getLogger(__name__)

SIGN_IN_SUBJECT = "Sign in link"

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def verification_url(ctx: AuthContext, token: str, host: str, scheme: str = "http") -> str:
    origin = ctx.server_url or f"{scheme}://{host}"
    return f"{origin}{ctx.base_path}/email/signin/{token}"


def sender_address(ctx: AuthContext, host: str) -> str:
    if ctx.mail_from:
        return ctx.mail_from
    return f"noreply@{host.split(':')[0]}"


def normalize_email(email: str | None) -> str | None:
    """Return the validated, normalized address, or None if it is blank or malformed."""
    email = (email or "").strip()
    if not email:
        return None
    try:
        return SignInRequest(email=email).email
    except ValidationError:
        logger.info("Rejected malformed sign-in address")
        return None


def _mask(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain}"


def _now() -> str:
    return datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _token_expired(ctx: AuthContext, issued_at: str | None) -> bool:
    if ctx.token_max_age <= 0 or not issued_at:
        return False
    issued = datetime.strptime(issued_at, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - issued > timedelta(seconds=ctx.token_max_age)


async def _store_token(ctx: AuthContext, email: str, token: str) -> None:
    user = await ctx.users.find_one(email=email)
    if user:
        user.token = token
        user.token_issued_at = _now()
        await ctx.users.save(user)
    else:
        await ctx.users.create(email, token=token, token_issued_at=_now())


async def issue_sign_in_token(
    ctx: AuthContext, email: str | None, host: str, scheme: str = "http"
) -> str | None:
    """Issue a token for `email` and mail its link.

    Returns the verification URL, or None when the address is blank or not
    a valid email; nothing is stored or sent in that case. Storage and mail
    failures are logged, never raised, so the caller always shows the same
    "check your email" page.
    """
    email = normalize_email(email)
    if email is None:
        return None

    token = generate_token()
    url = verification_url(ctx, token, host, scheme)

    try:
        await _store_token(ctx, email, token)
    except StorageError:
        logger.exception("Failed to store sign-in token for %s", _mask(email))

    try:
        await ctx.mailer.send(
            to=email,
            sender=sender_address(ctx, host),
            subject=SIGN_IN_SUBJECT,
            text=f"Use the link below to sign in:\n\n{url}\n\n",
        )
    except MailError as e:
        logger.error("Generated sign in link %s for %s", url, email)
        logger.error("Error sending email to %s: %s", email, e)
    else:
        logger.info("Sign-in link sent to %s", _mask(email))

    return url


async def redeem_sign_in_token(ctx: AuthContext, session: Session, token: str | None) -> str:
    """Consume `token` and bind `session` to its owner.

    Returns the path to redirect to. StorageError propagates.
    """
    if not token:
        return f"{ctx.base_path}/signin"

    user = await ctx.users.find_one(token=token)
    if not user:
        return f"{ctx.base_path}/invalid"

    if _token_expired(ctx, user.token_issued_at):
        user.token = None
        user.token_issued_at = None
        await ctx.users.save(user)
        logger.info("Expired sign-in token presented for user %s", user.id)
        return f"{ctx.base_path}/invalid"

    user.token = None
    user.token_issued_at = None
    user.verified = True
    await ctx.users.save(user)

    session.regenerate()
    session.user = user.id
    logger.info("User %s signed in", user.id)
    return f"{ctx.base_path}/valid"


def sign_out(session: Session) -> str:
    session.user = None
    return "/"


async def session_info(ctx: AuthContext, session: Session) -> dict:
    info: dict = {}
    if session.user:
        user = await ctx.users.get(session.user)
        if user:
            info["user"] = user.public_profile().model_dump()
    info["clientMaxAge"] = ctx.client_max_age
    info["csrfToken"] = session.ensure_csrf_token()
    return info
