"""User directory — the only code that reads or writes user rows.

Learn: Service layer separates business logic from HTTP routing.
Routes and the auth layer call the directory, the directory calls the
database. Every method is async and either returns a result or raises
one of the errors in secretboard.errors:

- Conflict → unique username already taken
- NotFound → save() on a row that no longer exists
- TransientStoreError → anything else the database throws

find_or_create() never does "SELECT, then INSERT if missing". Two first
logins from the same Google account would both see "missing" and both
insert. Instead it INSERTs with ON CONFLICT DO NOTHING against the
external_id unique constraint, then SELECTs — whoever loses the race
simply reads the winner's row.
"""

import uuid
from typing import Optional, Union

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from secretboard.db.models import User, new_uuid
from secretboard.errors import AuthFailed, Conflict, NotFound, TransientStoreError

logger = structlog.get_logger()

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class UserDirectory:
    """Lookup, creation and updates of User records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Lookups ────────────────────────────────────────

    async def find_by_id(self, user_id: Union[str, uuid.UUID]) -> Optional[User]:
        """Return the user with this id, or None (also for malformed ids)."""
        if not isinstance(user_id, uuid.UUID):
            try:
                user_id = uuid.UUID(str(user_id))
            except ValueError:
                return None
        try:
            return await self.db.get(User, user_id)
        except SQLAlchemyError as e:
            raise await self._transient("find_by_id", e)

    async def find_by_username(self, username: str) -> Optional[User]:
        try:
            result = await self.db.execute(
                select(User).where(User.username == username)
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise await self._transient("find_by_username", e)

    async def list_with_secrets(self) -> list[User]:
        """All users that have posted a secret, most recently updated first."""
        try:
            result = await self.db.execute(
                select(User)
                .where(User.secret.is_not(None))
                .order_by(User.updated_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise await self._transient("list_with_secrets", e)

    # ─── Creation ───────────────────────────────────────

    async def create(self, username: str, password_hash: str) -> User:
        """Create a local account. Raises Conflict if the username is taken.

        Learn: No "does it exist?" pre-check — the unique constraint is the
        check. Two simultaneous registrations of one name can't both win.
        """
        user = User(username=username, password_hash=password_hash)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("directory.username_taken", username=username)
            raise Conflict(f"Username {username!r} is already registered")
        except SQLAlchemyError as e:
            raise await self._transient("create", e)
        await self.db.refresh(user)
        logger.info("directory.user_created", user_id=str(user.id), method="local")
        return user

    async def find_or_create(self, external_id: str) -> User:
        """Return the user linked to external_id, creating it on first sight.

        Atomic with respect to external_id uniqueness: concurrent calls with
        the same id all return the same single row.
        """
        if not external_id:
            raise AuthFailed("External identity has no subject id")

        dialect = self.db.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise TransientStoreError(f"Unsupported database dialect: {dialect}")

        stmt = (
            insert(User)
            .values(id=new_uuid(), external_id=external_id)
            .on_conflict_do_nothing(index_elements=["external_id"])
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
            created = result.rowcount == 1

            result = await self.db.execute(
                select(User)
                .where(User.external_id == external_id)
                .execution_options(populate_existing=True)
            )
            user = result.scalars().one()
        except SQLAlchemyError as e:
            raise await self._transient("find_or_create", e)

        if created:
            logger.info("directory.user_created", user_id=str(user.id), method="oauth")
        return user

    # ─── Updates ────────────────────────────────────────

    async def save(self, user: User) -> User:
        """Persist the mutable fields of user. Raises NotFound if it vanished."""
        user_id = user.id
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                username=user.username,
                email=user.email,
                password_hash=user.password_hash,
                external_id=user.external_id,
                secret=user.secret,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            with self.db.no_autoflush:
                result = await self.db.execute(stmt)
            if result.rowcount == 0:
                await self.db.rollback()
                raise NotFound(f"User {user_id} no longer exists")
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict(f"Update of user {user_id} violates a unique field")
        except StaleDataError:
            await self.db.rollback()
            raise NotFound(f"User {user_id} no longer exists")
        except SQLAlchemyError as e:
            raise await self._transient("save", e)
        return user

    # ─── Helpers ────────────────────────────────────────

    async def _transient(self, op: str, error: SQLAlchemyError) -> TransientStoreError:
        logger.error("directory.store_error", op=op, error=str(error))
        try:
            await self.db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning("directory.rollback_failed", op=op, error=str(rollback_error))
        return TransientStoreError(f"Database error during {op}")
