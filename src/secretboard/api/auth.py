"""Auth routes — local registration/login and Google sign-in.

Learn: Routes for getting a session:
- POST /register → create a local account → session → /secrets
- POST /login → verify username/password → session → /secrets
- GET /auth/google → redirect to Google (scope=profile)
- GET /auth/google/secrets → OAuth callback → session → /secrets

A session is only ever issued AFTER the credential check has passed.
Every failure is a plain redirect back to the form; the client never
sees why.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse

from secretboard.auth.credentials import CredentialVerifier
from secretboard.auth.dependencies import (
    get_directory,
    get_oauth,
    get_sessions,
    get_verifier,
    session_token,
)
from secretboard.auth.oauth import GoogleOAuthAdapter
from secretboard.auth.sessions import SessionManager
from secretboard.auth.tokens import OAUTH_STATE, TokenError, create_token, verify_token
from secretboard.db.models import User
from secretboard.errors import AuthFailed, Conflict, TransientStoreError
from secretboard.services.user_directory import UserDirectory

logger = structlog.get_logger()

router = APIRouter()

STATE_COOKIE = "secretboard_oauth_state"
STATE_MAX_AGE_SECONDS = 600


async def start_session(
    request: Request, sessions: SessionManager, user: User, url: str
) -> RedirectResponse:
    """Replace any existing session with a fresh one for user and redirect."""
    await sessions.destroy(session_token(request))
    token = await sessions.serialize(user)
    response = RedirectResponse(url=url, status_code=303)
    response.set_cookie(value=token, **sessions.cookie_kwargs())
    return response


# ─── Local accounts ──────────────────────────────────────


@router.post("/register")
async def register(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    verifier: CredentialVerifier = Depends(get_verifier),
    sessions: SessionManager = Depends(get_sessions),
):
    try:
        user = await verifier.register(username, password)
    except (AuthFailed, Conflict) as e:
        logger.info("auth.register_failed", username=username.strip(), reason=str(e))
        return RedirectResponse(url="/register", status_code=303)

    return await start_session(request, sessions, user, "/secrets")


@router.post("/login")
async def login(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    verifier: CredentialVerifier = Depends(get_verifier),
    sessions: SessionManager = Depends(get_sessions),
):
    try:
        user = await verifier.verify(username, password)
    except AuthFailed:
        return RedirectResponse(url="/login", status_code=303)

    logger.info("auth.login", user_id=str(user.id), method="local")
    return await start_session(request, sessions, user, "/secrets")


# ─── Google ──────────────────────────────────────────────


@router.get("/auth/google")
async def google_login(
    request: Request,
    oauth: GoogleOAuthAdapter = Depends(get_oauth),
):
    """Send the browser to Google. The state token is mirrored in a cookie."""
    state = create_token(
        request.app.state.settings.session_secret,
        OAUTH_STATE,
        expires_seconds=STATE_MAX_AGE_SECONDS,
    )
    try:
        url = oauth.authorization_url(state)
    except AuthFailed:
        return RedirectResponse(url="/login", status_code=303)

    response = RedirectResponse(url=url, status_code=303)
    response.set_cookie(
        key=STATE_COOKIE,
        value=state,
        max_age=STATE_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=request.app.state.settings.session_cookie_secure,
    )
    return response


@router.get("/auth/google/secrets")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    oauth: GoogleOAuthAdapter = Depends(get_oauth),
    directory: UserDirectory = Depends(get_directory),
    sessions: SessionManager = Depends(get_sessions),
):
    """OAuth callback. Success → /secrets, anything else → /login."""
    try:
        if error:
            raise AuthFailed(f"Provider denied sign-in: {error}")
        _check_state(request, state)
        user = await oauth.authenticate(directory, code or "")
        response = await start_session(request, sessions, user, "/secrets")
    except AuthFailed as e:
        logger.info("auth.oauth_failed", provider="google", reason=str(e))
        return _callback_failed()
    except TransientStoreError as e:
        logger.error("auth.oauth_store_error", provider="google", error=str(e))
        return _callback_failed()

    logger.info("auth.login", user_id=str(user.id), method="google")
    response.delete_cookie(STATE_COOKIE)
    return response


def _callback_failed() -> RedirectResponse:
    response = RedirectResponse(url="/login", status_code=303)
    response.delete_cookie(STATE_COOKIE)
    return response


def _check_state(request: Request, state: Optional[str]) -> None:
    """The callback's state must be ours, unexpired, and match this browser's cookie."""
    expected = request.cookies.get(STATE_COOKIE)
    if not state or not expected or state != expected:
        raise AuthFailed("OAuth state mismatch")
    try:
        verify_token(request.app.state.settings.session_secret, state, OAUTH_STATE)
    except TokenError as e:
        raise AuthFailed(f"Invalid OAuth state: {e}")
