"""Session manager — server-side sessions keyed by an opaque cookie.

Learn: The browser only ever holds a signed token wrapping a random
session id. Everything else lives in the session store:

    secretboard:session:{sid} → {"user_id": "<uuid>"}   (TTL = max age)

serialize() writes that record, deserialize() reads it back and loads the
user from the directory, destroy() deletes it (logout). Passwords and
secrets never enter session state — only the user id.

Two store backends:
- RedisSessionStore: production, shared by every worker process
- MemorySessionStore: development and tests, one process only
"""

import json
import secrets
import time
from typing import Optional, Protocol

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from secretboard.auth.tokens import SESSION, TokenError, create_token, verify_token
from secretboard.config import Settings
from secretboard.db.models import User
from secretboard.errors import AuthFailed, TransientStoreError
from secretboard.services.user_directory import UserDirectory

logger = structlog.get_logger()

KEY_PREFIX = "secretboard:session:"


# ─── Stores ──────────────────────────────────────────────


class SessionStore(Protocol):
    """What the session manager needs from a store."""

    async def get(self, sid: str) -> Optional[dict]: ...

    async def set(self, sid: str, data: dict, ttl_seconds: int) -> None: ...

    async def delete(self, sid: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class MemorySessionStore:
    """In-process session store with per-entry expiry."""

    def __init__(self):
        self._data: dict[str, tuple[float, dict]] = {}

    async def get(self, sid: str) -> Optional[dict]:
        entry = self._data.get(sid)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at <= time.monotonic():
            self._data.pop(sid, None)
            return None
        return dict(data)

    async def set(self, sid: str, data: dict, ttl_seconds: int) -> None:
        now = time.monotonic()
        self._sweep(now)
        self._data[sid] = (now + ttl_seconds, dict(data))

    async def delete(self, sid: str) -> None:
        self._data.pop(sid, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def _sweep(self, now: float) -> None:
        # Sessions nobody reads again would otherwise live forever
        expired = [sid for sid, (expires_at, _) in self._data.items() if expires_at <= now]
        for sid in expired:
            del self._data[sid]


class RedisSessionStore:
    """Redis-backed session store. Expiry is handled by Redis (SET .. EX)."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionStore":
        """Build a store from a Redis URL. No connection is made until first use."""
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, sid: str) -> Optional[dict]:
        try:
            raw = await self.client.get(KEY_PREFIX + sid)
        except RedisError as e:
            logger.error("session.store_error", op="get", error=str(e))
            raise TransientStoreError("Session store unavailable")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("session.corrupt_record", sid_prefix=sid[:8])
            return None

    async def set(self, sid: str, data: dict, ttl_seconds: int) -> None:
        try:
            await self.client.set(KEY_PREFIX + sid, json.dumps(data), ex=ttl_seconds)
        except RedisError as e:
            logger.error("session.store_error", op="set", error=str(e))
            raise TransientStoreError("Session store unavailable")

    async def delete(self, sid: str) -> None:
        try:
            await self.client.delete(KEY_PREFIX + sid)
        except RedisError as e:
            logger.error("session.store_error", op="delete", error=str(e))
            raise TransientStoreError("Session store unavailable")

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.client.aclose()


def build_session_store(settings: Settings) -> SessionStore:
    if settings.session_backend == "redis":
        return RedisSessionStore.from_url(settings.redis_url)
    return MemorySessionStore()


# ─── Manager ─────────────────────────────────────────────


class SessionManager:
    """Issues, resolves and destroys sessions."""

    def __init__(self, store: SessionStore, settings: Settings):
        self.store = store
        self.secret = settings.session_secret
        self.max_age = settings.session_max_age_seconds
        self.cookie_name = settings.session_cookie_name
        self.cookie_secure = settings.session_cookie_secure

    async def serialize(self, user: User) -> str:
        """Start a session for user and return the cookie token."""
        sid = secrets.token_urlsafe(32)
        await self.store.set(sid, {"user_id": str(user.id)}, self.max_age)
        logger.info("session.created", user_id=str(user.id))
        return create_token(self.secret, SESSION, subject=sid)

    async def deserialize(self, directory: UserDirectory, token: Optional[str]) -> User:
        """Resolve a cookie token to its User.

        Raises AuthFailed when the token is missing, forged, expired, or
        points at a session or user that no longer exists.
        """
        if not token:
            raise AuthFailed("No session")
        sid = self._session_id(token)
        if sid is None:
            raise AuthFailed("Invalid session token")

        data = await self.store.get(sid)
        if not data or not data.get("user_id"):
            raise AuthFailed("Session expired or logged out")

        user = await directory.find_by_id(data["user_id"])
        if user is None:
            # Deleted out-of-band, or not yet visible to this reader
            logger.warning("session.user_missing", user_id=data["user_id"])
            raise AuthFailed("Session user no longer exists")
        return user

    async def destroy(self, token: Optional[str]) -> None:
        """Invalidate the session behind token. Unknown/invalid tokens are a no-op."""
        sid = self._session_id(token) if token else None
        if sid is None:
            return
        await self.store.delete(sid)
        logger.info("session.destroyed")

    def cookie_kwargs(self) -> dict:
        """Arguments for Response.set_cookie()."""
        return {
            "key": self.cookie_name,
            "max_age": self.max_age,
            "httponly": True,
            "samesite": "lax",
            "secure": self.cookie_secure,
        }

    def _session_id(self, token: str) -> Optional[str]:
        try:
            return verify_token(self.secret, token, SESSION)
        except TokenError:
            return None
