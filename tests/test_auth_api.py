"""Auth route tests — register, login, logout, Google sign-in.

Learn: Tests cover:
1. Registration + duplicate prevention
2. Login → session cookie, and NO session on bad credentials
3. Logout invalidates the session server-side (old cookie is dead)
4. Google sign-in: success, repeat sign-in, denial, state mismatch,
   bad code, malformed profile
"""

import pytest
from sqlalchemy import func, select

from conftest import google_sign_in, login, register
from secretboard.db.models import User


def _session_cookie(app, client):
    return client.cookies.get(app.state.settings.session_cookie_name)


async def _user_count(app, *where) -> int:
    async with app.state.session_factory() as s:
        result = await s.execute(select(func.count()).select_from(User).where(*where))
        return result.scalar_one()


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_starts_session(app, client):
    r = await register(client, "alice@example.com", "pw1")
    assert r.status_code == 303
    assert r.headers["location"] == "/secrets"
    assert _session_cookie(app, client)

    r = await client.get("/submit")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_register_duplicate_username(app, client, other_client):
    await register(client, "alice@example.com", "pw1")

    r = await register(other_client, "alice@example.com", "another")
    assert r.status_code == 303
    assert r.headers["location"] == "/register"
    assert _session_cookie(app, other_client) is None
    assert await _user_count(app, User.username == "alice@example.com") == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("username,password", [("", "pw"), ("bob@example.com", "")])
async def test_register_missing_fields(app, client, username, password):
    r = await register(client, username, password)
    assert r.status_code == 303
    assert r.headers["location"] == "/register"
    assert _session_cookie(app, client) is None
    assert await _user_count(app) == 0


@pytest.mark.asyncio
async def test_register_cookie_flags(client):
    r = await register(client, "alice@example.com", "pw1")
    set_cookie = r.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_success(app, client, other_client):
    await register(client, "alice@example.com", "pw1")

    r = await login(other_client, "alice@example.com", "pw1")
    assert r.status_code == 303
    assert r.headers["location"] == "/secrets"
    assert _session_cookie(app, other_client)

    r = await other_client.get("/submit")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_login_wrong_password_creates_no_session(app, client, other_client):
    """Credentials are verified BEFORE any session exists."""
    await register(client, "alice@example.com", "pw1")

    r = await login(other_client, "alice@example.com", "wrong")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    assert _session_cookie(app, other_client) is None
    assert len(app.state.sessions.store) == 1  # only the registration session

    r = await other_client.get("/submit")
    assert r.headers["location"] == "/login"


@pytest.mark.asyncio
async def test_login_unknown_user(app, client):
    r = await login(client, "nobody@example.com", "whatever")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    assert _session_cookie(app, client) is None


@pytest.mark.asyncio
async def test_login_rotates_session(app, client):
    """Logging in again replaces the previous session instead of adding one."""
    await register(client, "alice@example.com", "pw1")
    first = _session_cookie(app, client)

    await login(client, "alice@example.com", "pw1")
    second = _session_cookie(app, client)

    assert first != second
    assert len(app.state.sessions.store) == 1


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_invalidates_session(app, client, other_client):
    await register(client, "alice@example.com", "pw1")
    token = _session_cookie(app, client)
    cookie_name = app.state.settings.session_cookie_name

    r = await client.get("/logout")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"

    r = await client.get("/submit")
    assert r.headers["location"] == "/login"

    # Replaying the old cookie from elsewhere doesn't work either
    r = await other_client.get("/submit", headers={"Cookie": f"{cookie_name}={token}"})
    assert r.status_code == 303
    assert r.headers["location"] == "/login"


@pytest.mark.asyncio
async def test_logout_without_session(client):
    r = await client.get("/logout")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"


# ═══════════════════════════════════════════════════════════
# Google sign-in
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_google_redirect(client):
    r = await client.get("/auth/google")
    assert r.status_code == 303
    location = r.headers["location"]
    assert location.startswith("https://accounts.google.com/")
    assert "scope=profile" in location
    assert "secretboard_oauth_state" in r.headers["set-cookie"]


@pytest.mark.asyncio
async def test_google_sign_in(app, client, fake_google):
    fake_google.add("code-1", {"sub": "g-1001", "name": "Alice"})

    r = await google_sign_in(client, "code-1")
    assert r.status_code == 303
    assert r.headers["location"] == "/secrets"
    assert _session_cookie(app, client)

    r = await client.get("/submit")
    assert r.status_code == 200
    assert await _user_count(app, User.external_id == "g-1001") == 1


@pytest.mark.asyncio
async def test_google_sign_in_twice_same_user(app, client, other_client, fake_google):
    fake_google.add("code-1", {"sub": "g-1001"})
    fake_google.add("code-2", {"sub": "g-1001"})

    await google_sign_in(client, "code-1")
    await google_sign_in(other_client, "code-2")

    assert await _user_count(app, User.external_id == "g-1001") == 1


@pytest.mark.asyncio
async def test_google_denied(app, client):
    r = await client.get("/auth/google")
    assert r.status_code == 303

    r = await client.get("/auth/google/secrets", params={"error": "access_denied"})
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    assert _session_cookie(app, client) is None


@pytest.mark.asyncio
async def test_google_state_mismatch(app, client, fake_google):
    fake_google.add("code-1", {"sub": "g-1001"})

    r = await google_sign_in(client, "code-1", state="forged-state")
    assert r.headers["location"] == "/login"
    assert _session_cookie(app, client) is None
    assert await _user_count(app) == 0


@pytest.mark.asyncio
async def test_google_callback_without_initiating(app, client, fake_google):
    """No state cookie (flow never started in this browser) → rejected."""
    fake_google.add("code-1", {"sub": "g-1001"})
    r = await client.get("/auth/google/secrets", params={"code": "code-1", "state": "x"})
    assert r.headers["location"] == "/login"
    assert await _user_count(app) == 0


@pytest.mark.asyncio
async def test_google_bad_code(app, client):
    r = await google_sign_in(client, "never-issued")
    assert r.headers["location"] == "/login"
    assert _session_cookie(app, client) is None


@pytest.mark.asyncio
async def test_google_profile_without_id(app, client, fake_google):
    fake_google.add("code-1", {"name": "Nameless"})

    r = await google_sign_in(client, "code-1")
    assert r.headers["location"] == "/login"
    assert _session_cookie(app, client) is None
    assert await _user_count(app) == 0


@pytest.mark.asyncio
async def test_google_not_configured(settings):
    from httpx import ASGITransport, AsyncClient

    from secretboard.db.engine import create_tables
    from secretboard.main import create_app

    settings = settings.model_copy(update={"google_client_id": "", "google_client_secret": ""})
    app = create_app(settings)
    await create_tables(app.state.engine)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            r = await ac.get("/auth/google")
            assert r.status_code == 303
            assert r.headers["location"] == "/login"
    finally:
        await app.state.engine.dispose()
