"""passlink: FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from passlink.auth.setup import configure_auth
from passlink.config import settings
from passlink.db.database import init_db, close_db
from passlink.services.user_store import SQLiteUserStore

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


async def _session_cleanup_loop(app: FastAPI):
    """Background task: drop expired sessions every hour."""
    while True:
        await asyncio.sleep(3600)
        try:
            deleted = await app.state.auth.sessions.store.cleanup()
            if deleted:
                logger.info("Session cleanup: removed %d expired sessions", deleted)
        except Exception:
            logger.exception("Session cleanup failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting passlink server...")
    await init_db()
    cleanup_task = asyncio.create_task(_session_cleanup_loop(app))
    logger.info("passlink server ready")
    yield

    cleanup_task.cancel()
    await close_db()
    logger.info("passlink server stopped")


app = FastAPI(
    title="passlink",
    description="Passwordless email-link sign-in",
    version="0.1.0",
    lifespan=lifespan,
)

configure_auth(app, users=SQLiteUserStore())

# CORS last so it runs outermost, ahead of the session and CSRF layers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "passlink", "version": "0.1.0"}


@app.get("/")
async def root(request: Request):
    return {"service": "passlink", "user": request.state.user}
