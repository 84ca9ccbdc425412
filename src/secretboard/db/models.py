"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
One table: users. A user is created either by local registration (username +
password hash) or by a first Google sign-in (external_id only).

Key concepts:
- UUID primary keys, generated in Python so they are known before INSERT
- Nullable unique columns: username and external_id are unique WHEN present
  (both PostgreSQL and SQLite allow many NULLs under a unique constraint)
- The external_id unique constraint is what makes find-or-create atomic
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class User(Base):
    """A person who can sign in and post a secret.

    Learn: password_hash is set only for local accounts, external_id only
    for Google accounts. A user with neither can't log in at all.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("external_id", name="uq_users_external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=new_uuid
    )
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for OAuth
    external_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # Google subject id
    secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    @property
    def can_login(self) -> bool:
        return bool(self.password_hash or self.external_id)

    def __repr__(self) -> str:
        # Never include password_hash or secret
        return f"<User id={self.id} username={self.username!r}>"
