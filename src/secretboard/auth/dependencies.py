"""FastAPI auth dependencies — the route authorization gate.

Learn: These are used as Depends() in route handlers to resolve the
session cookie to a User before the handler body runs.

- get_current_user_optional → User or None (pages that work either way)
- require_user → User, or a 303 redirect to /login (protected pages)

Because require_user is a dependency, an unauthenticated POST /submit
never reaches the code that writes the secret.
"""

from typing import Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from secretboard.auth.credentials import CredentialVerifier
from secretboard.auth.oauth import GoogleOAuthAdapter
from secretboard.auth.sessions import SessionManager
from secretboard.db.engine import get_db
from secretboard.db.models import User
from secretboard.errors import AuthFailed, LoginRequired, TransientStoreError
from secretboard.services.user_directory import UserDirectory

logger = structlog.get_logger()


def get_directory(db: AsyncSession = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db)


def get_verifier(directory: UserDirectory = Depends(get_directory)) -> CredentialVerifier:
    return CredentialVerifier(directory)


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_oauth(request: Request) -> GoogleOAuthAdapter:
    return request.app.state.oauth


def session_token(request: Request) -> Optional[str]:
    """The raw session cookie value, if any."""
    return request.cookies.get(request.app.state.sessions.cookie_name)


async def get_current_user_optional(
    request: Request,
    directory: UserDirectory = Depends(get_directory),
    sessions: SessionManager = Depends(get_sessions),
) -> Optional[User]:
    """Resolve the session cookie (optional — returns None if unauthenticated)."""
    try:
        user = await sessions.deserialize(directory, session_token(request))
    except AuthFailed:
        user = None
    except TransientStoreError:
        # Can't tell who this is right now; treat as signed out
        logger.warning("session.resolve_unavailable", path=request.url.path)
        user = None
    request.state.user = user
    return user


async def require_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Resolve the session cookie (required — redirect to /login if absent)."""
    if user is None:
        raise LoginRequired()
    return user
