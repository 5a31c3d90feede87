"""Email sign-in, sign-out and session introspection routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from passlink.auth.context import AuthContext, get_auth_context
from passlink.auth.email_signin import (
    issue_sign_in_token,
    normalize_email,
    redeem_sign_in_token,
    session_info,
    sign_out,
)


def _render(ctx: AuthContext, request: Request, page: str, **extra):
    context = {
        "user": getattr(request.state, "user", None),
        "csrf_token": getattr(request.state, "csrf_token", ""),
        "base_path": ctx.base_path,
        **extra,
    }
    return ctx.templates.TemplateResponse(request, ctx.page(page), context)


def create_auth_router(base_path: str = "/auth") -> APIRouter:
    router = APIRouter(prefix=base_path, tags=["auth"])

    @router.get("/csrf")
    async def get_csrf_token(request: Request):
        return {"csrfToken": request.state.csrf_token}

    @router.get("/session")
    async def get_session(request: Request, ctx: AuthContext = Depends(get_auth_context)):
        return await session_info(ctx, request.state.session)

    @router.get("/signin")
    async def signin_page(request: Request, ctx: AuthContext = Depends(get_auth_context)):
        return _render(ctx, request, "signin")

    @router.get("/valid")
    async def valid_page(request: Request, ctx: AuthContext = Depends(get_auth_context)):
        return _render(ctx, request, "valid")

    @router.get("/invalid")
    async def invalid_page(request: Request, ctx: AuthContext = Depends(get_auth_context)):
        return _render(ctx, request, "invalid")

    @router.post("/email/signin")
    async def email_signin(request: Request, ctx: AuthContext = Depends(get_auth_context)):
        """Email a sign-in link, then ask the user to check their inbox."""
        form = await request.form()
        raw = form.get("email")
        email = normalize_email(raw if isinstance(raw, str) else None)
        host = request.headers.get("host") or request.url.netloc
        url = await issue_sign_in_token(ctx, email, host, request.url.scheme)
        if url is None:
            return _render(ctx, request, "signin")
        return _render(ctx, request, "check-email", email=email)

    @router.get("/email/signin")
    async def email_signin_without_token(
        request: Request, ctx: AuthContext = Depends(get_auth_context)
    ):
        target = await redeem_sign_in_token(ctx, request.state.session, None)
        return RedirectResponse(target, status_code=302)

    @router.get("/email/signin/{token}")
    async def email_signin_callback(
        token: str, request: Request, ctx: AuthContext = Depends(get_auth_context)
    ):
        target = await redeem_sign_in_token(ctx, request.state.session, token)
        return RedirectResponse(target, status_code=302)

    @router.post("/signout")
    async def signout(request: Request):
        return RedirectResponse(sign_out(request.state.session), status_code=302)

    return router
