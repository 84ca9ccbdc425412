"""Credential verifier — local username/password accounts.

Learn: Plaintext passwords only ever live in the request that carries
them. register() turns one into a bcrypt hash before it reaches the
directory; verify() compares against the stored hash. Neither logs the
password, and failed logins log only the username.

bcrypt is CPU-bound on purpose, so every hash and check runs in the
threadpool. The event loop keeps serving other requests meanwhile.
"""

from functools import lru_cache

import structlog
from fastapi.concurrency import run_in_threadpool

from secretboard.auth.password import hash_password, verify_password
from secretboard.db.models import User
from secretboard.errors import AuthFailed
from secretboard.services.user_directory import UserDirectory

logger = structlog.get_logger()


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Checked against when the username doesn't exist, so a miss costs the
    same bcrypt time as a wrong password. Built on first use, not at import.
    """
    return hash_password("secretboard-timing-equaliser")


def _check_dummy(password: str) -> None:
    verify_password(password, _dummy_hash())


class CredentialVerifier:
    """Registers and verifies local accounts."""

    def __init__(self, directory: UserDirectory):
        self.directory = directory

    async def register(self, username: str, password: str) -> User:
        """Create a local account.

        Raises AuthFailed for an empty username/password and Conflict
        (from the directory) if the username is taken.
        """
        username = (username or "").strip()
        if not username or not password:
            raise AuthFailed("Username and password are required")
        password_hash = await run_in_threadpool(hash_password, password)
        return await self.directory.create(username, password_hash)

    async def verify(self, username: str, password: str) -> User:
        """Return the user for a correct username/password, else raise AuthFailed."""
        username = (username or "").strip()
        user = await self.directory.find_by_username(username) if username else None

        if user is None or not user.password_hash:
            await run_in_threadpool(_check_dummy, password or "")
            logger.info("auth.login_failed", username=username, reason="unknown_user")
            raise AuthFailed("Invalid credentials")

        if not await run_in_threadpool(verify_password, password, user.password_hash):
            logger.info("auth.login_failed", username=username, reason="bad_password")
            raise AuthFailed("Invalid credentials")

        return user
