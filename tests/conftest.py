"""Test fixtures — a throwaway SQLite database and a fake Google per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own SQLite file (tmp_path), so nothing leaks
   between tests and several connections can see the same data
   (needed for the concurrent find-or-create tests).
2. The app is built with create_app(settings, oauth=...) — no env vars,
   in-memory session store, and a GoogleOAuthAdapter whose httpx
   transport is a MockTransport serving canned token/userinfo replies.
3. httpx.AsyncClient + ASGITransport drives the app in-process. It does
   not follow redirects, so tests assert on 303 + Location directly.
"""

from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from secretboard.auth.oauth import TOKEN_URL, USERINFO_URL, GoogleOAuthAdapter
from secretboard.config import Settings
from secretboard.db.engine import build_engine, build_session_factory, create_tables
from secretboard.main import create_app


class FakeGoogle:
    """Serves Google's token and userinfo endpoints from a dict of codes.

    profiles maps an authorization code to the userinfo JSON Google would
    return for it. Unknown codes get a 400 from the token endpoint, like
    an expired or already-used code would.
    """

    def __init__(self):
        self.profiles: dict[str, dict] = {}
        self.token_requests: list[dict] = []

    def add(self, code: str, profile: dict) -> None:
        self.profiles[code] = profile

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == TOKEN_URL:
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            code = form.get("code", "")
            if code not in self.profiles:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": f"at-{code}", "token_type": "Bearer"})
        if url.startswith(USERINFO_URL):
            auth = request.headers.get("Authorization", "")
            code = auth.removeprefix("Bearer at-")
            if code not in self.profiles:
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(200, json=self.profiles[code])
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'secretboard.db'}",
        session_secret="test-secret",
        session_backend="memory",
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_callback_url="http://test/auth/google/secrets",
        environment="development",
        _env_file=None,
    )


@pytest.fixture()
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest_asyncio.fixture()
async def engine(settings):
    engine = build_engine(settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def app(settings, fake_google):
    """The real app, with Google swapped for FakeGoogle."""
    oauth = GoogleOAuthAdapter(settings, transport=fake_google.transport())
    app = create_app(settings, oauth=oauth)
    # ASGITransport doesn't run lifespan, so create the schema here
    await create_tables(app.state.engine)
    yield app
    await app.state.engine.dispose()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def other_client(app):
    """A second browser — its own cookie jar, same app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Helpers ────────────────────────────────────────────


async def register(client: AsyncClient, username: str, password: str) -> httpx.Response:
    return await client.post(
        "/register", data={"username": username, "password": password}
    )


async def login(client: AsyncClient, username: str, password: str) -> httpx.Response:
    return await client.post(
        "/login", data={"username": username, "password": password}
    )


async def google_sign_in(
    client: AsyncClient, code: str, state: Optional[str] = None
) -> httpx.Response:
    """Walk the OAuth flow: /auth/google, then the callback with code."""
    r = await client.get("/auth/google")
    assert r.status_code == 303
    issued = parse_qs(urlparse(r.headers["location"]).query)["state"][0]
    return await client.get(
        "/auth/google/secrets",
        params={"code": code, "state": state if state is not None else issued},
    )
