"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Settings are read once here and everything that needs them
(engine, session manager, OAuth adapter) is built from that one object
and kept on app.state. Lifespan manages startup/shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse

from secretboard import __version__
from secretboard.api import app_router
from secretboard.auth.oauth import GoogleOAuthAdapter
from secretboard.auth.sessions import SessionManager, build_session_store
from secretboard.config import Settings
from secretboard.db.engine import build_engine, build_session_factory, create_tables
from secretboard.errors import LoginRequired, TransientStoreError
from secretboard.middleware.request_id import RequestIdMiddleware
from secretboard.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(
        "secretboard.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        session_backend=settings.session_backend,
    )

    if settings.auto_create_tables:
        await create_tables(app.state.engine)

    if not await app.state.sessions.store.ping():
        logger.warning("secretboard.session_store_unavailable", backend=settings.session_backend)

    if not settings.google_configured:
        logger.warning("secretboard.google_oauth_disabled")

    yield

    logger.info("secretboard.shutdown")
    await app.state.sessions.store.close()
    await app.state.engine.dispose()


async def transient_store_error_handler(request: Request, exc: TransientStoreError):
    """Store I/O failed — redirect without changing anything.

    Form posts go back to the form they came from, page loads to /.
    """
    logger.error("secretboard.store_unavailable", path=request.url.path, error=str(exc))
    url = request.url.path if request.method == "POST" else "/"
    return RedirectResponse(url=url, status_code=303)


async def login_required_handler(request: Request, exc: LoginRequired):
    return RedirectResponse(url="/login", status_code=303)


def create_app(
    settings: Optional[Settings] = None,
    oauth: Optional[GoogleOAuthAdapter] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="Secretboard",
        description="Share a secret anonymously",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.sessions = SessionManager(build_session_store(settings), settings)
    app.state.oauth = oauth or GoogleOAuthAdapter(settings)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → handler
    app.add_middleware(
        SecurityHeadersMiddleware,
        session_cookie_name=settings.session_cookie_name,
    )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(LoginRequired, login_required_handler)
    app.add_exception_handler(TransientStoreError, transient_store_error_handler)

    app.include_router(app_router)

    return app
