"""Page routes — landing, forms, the secrets board, submit, logout.

Learn: Every route here either renders a template or redirects (303).
Protected pages declare Depends(require_user); the handler body only
runs once the session has resolved to a real User.
"""

from pathlib import Path
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from secretboard.auth.dependencies import (
    get_current_user_optional,
    get_directory,
    get_sessions,
    require_user,
    session_token,
)
from secretboard.auth.sessions import SessionManager
from secretboard.db.models import User
from secretboard.errors import NotFound
from secretboard.services.user_directory import UserDirectory

logger = structlog.get_logger()

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def render(request: Request, template_name: str, ctx: Optional[dict] = None):
    """TemplateResponse wrapper injecting the signed-in user."""
    base_ctx = {"current_user": getattr(request.state, "user", None)}
    return templates.TemplateResponse(request, template_name, {**base_ctx, **(ctx or {})})


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


# ─── Public pages ────────────────────────────────────────


@router.get("/", response_class=HTMLResponse)
async def home(request: Request, user: Optional[User] = Depends(get_current_user_optional)):
    return render(request, "home.html")


@router.get("/login", response_class=HTMLResponse)
async def login_form(request: Request, user: Optional[User] = Depends(get_current_user_optional)):
    return render(request, "login.html")


@router.get("/register", response_class=HTMLResponse)
async def register_form(request: Request, user: Optional[User] = Depends(get_current_user_optional)):
    return render(request, "register.html")


@router.get("/secrets", response_class=HTMLResponse)
async def secrets_board(
    request: Request,
    user: Optional[User] = Depends(get_current_user_optional),
    directory: UserDirectory = Depends(get_directory),
):
    """Everyone's secrets, no login needed. Authors stay anonymous."""
    users = await directory.list_with_secrets()
    return render(request, "secrets.html", {"title": None, "users": users})


# ─── Protected pages ─────────────────────────────────────


@router.get("/secrets/{title}", response_class=HTMLResponse)
async def secrets_board_titled(
    request: Request,
    title: str,
    user: User = Depends(require_user),
    directory: UserDirectory = Depends(get_directory),
):
    users = await directory.list_with_secrets()
    return render(request, "secrets.html", {"title": title, "users": users})


@router.get("/submit", response_class=HTMLResponse)
async def submit_form(request: Request, user: User = Depends(require_user)):
    return render(request, "submit.html")


@router.post("/submit")
async def submit_secret(
    request: Request,
    secret: str = Form(""),
    user: User = Depends(require_user),
    directory: UserDirectory = Depends(get_directory),
    sessions: SessionManager = Depends(get_sessions),
):
    """Overwrite the signed-in user's secret."""
    secret = secret.strip()
    if not secret:
        return redirect("/submit")

    user.secret = secret
    try:
        await directory.save(user)
    except NotFound:
        # Account vanished between the session check and the write
        await sessions.destroy(session_token(request))
        response = redirect("/login")
        response.delete_cookie(sessions.cookie_name)
        return response

    logger.info("secret.submitted", user_id=str(user.id))
    return redirect("/secrets")


# ─── Logout ──────────────────────────────────────────────


@router.get("/logout")
async def logout(request: Request, sessions: SessionManager = Depends(get_sessions)):
    await sessions.destroy(session_token(request))
    response = redirect("/login")
    response.delete_cookie(sessions.cookie_name)
    return response
