"""SQLAlchemy base classes and common mixins.

Defines the declarative base, a UTC-normalising datetime column type, and
the reusable column mixins shared by the token and code tables.
"""

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, func, text
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

if TYPE_CHECKING:
    from authstore.models.user import User


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_aware(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware DateTime that always stores and returns UTC.

    PostgreSQL keeps the offset in TIMESTAMPTZ, SQLite does not; binding
    through UTC and tagging loaded naive values keeps comparisons with
    ``utcnow()`` valid on both backends.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(timezone=True)

    def process_bind_param(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_aware(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_aware(value)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        datetime: UTCDateTime(),
    }


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns.

    Attributes:
        created_at: Timestamp when the record was created.
        updated_at: Timestamp when the record was last modified.
    """

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class OwnedByUserMixin:
    """Mixin for rows that belong to exactly one user.

    The foreign key cascades on delete, so removing a user removes every
    owned row at the store level.

    Attributes:
        user_id: FK to users table.
        user: Owning user. Only populated where a query eager-loads it.
        created_at: Record creation timestamp.
    """

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    @declared_attr
    def user(cls) -> Mapped["User"]:
        return relationship("User")


class CodeColumnsMixin(OwnedByUserMixin):
    """Columns shared by verification and reset code tables.

    A code is scoped to a channel value (email address or phone number),
    not to an identifier row, because it may be issued before the
    identifier is confirmed.

    Attributes:
        id: UUID primary key.
        channel_value: Email address or phone number the code was sent to.
        code_hash: Hash of the code the user has to present.
        expires_at: Code expiry timestamp.
        failed_attempts: Number of wrong guesses recorded against the code.
        invalidated_at: When the code was burned. NULL = still redeemable.
    """

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    channel_value: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        index=True,
    )
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    failed_attempts: Mapped[int] = mapped_column(
        Integer(),
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    invalidated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @declared_attr.directive
    def __table_args__(cls) -> tuple[CheckConstraint, ...]:
        return (
            CheckConstraint(
                "failed_attempts >= 0",
                name=f"ck_{cls.__tablename__}_failed_attempts",
            ),
        )

    @property
    def is_expired(self) -> bool:
        """True once ``expires_at`` is in the past."""
        return ensure_aware(self.expires_at) <= utcnow()

    @property
    def is_invalidated(self) -> bool:
        """True once the code has been burned by invalidate_all()."""
        return self.invalidated_at is not None

    def is_valid(self, max_attempts: int) -> bool:
        """Check whether the code is still fresh under an attempt policy.

        Invalidation is enforced at lookup time and is not part of this
        predicate.

        Args:
            max_attempts: Caller's threshold of allowed failed attempts.

        Returns:
            True if not expired and failed_attempts < max_attempts.
        """
        return not self.is_expired and self.failed_attempts < max_attempts
