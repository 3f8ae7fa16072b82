"""User and identifier models - the identity graph.

Every token and code hangs off a User. A User owns zero or more
identifiers; a user with no email, phone, or username identifier is
anonymous.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authstore.core.identity import IdentifierKind
from authstore.models.base import Base, TimestampMixin, utcnow

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"
_NOT_FEDERATED = text("kind <> 'federated'")
_FEDERATED = text("kind = 'federated'")


class User(Base, TimestampMixin):
    """Registered (or anonymous) user.

    Attributes:
        id: UUID primary key.
        password_hash: Hash set by the caller. NULL for federated-only users.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
        identifiers: Login handles in insertion order.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Relationships
    identifiers: Mapped[list["UserIdentifier"]] = relationship(
        "UserIdentifier",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        passive_deletes=True,
        order_by=lambda: [UserIdentifier.created_at, UserIdentifier.id],
    )

    def _first_identifier(self, kind: IdentifierKind) -> "UserIdentifier | None":
        return next((i for i in self.identifiers if i.kind == kind.value), None)

    @property
    def email(self) -> str | None:
        identifier = self._first_identifier(IdentifierKind.EMAIL)
        return identifier.value if identifier else None

    @property
    def phone(self) -> str | None:
        identifier = self._first_identifier(IdentifierKind.PHONE)
        return identifier.value if identifier else None

    @property
    def username(self) -> str | None:
        identifier = self._first_identifier(IdentifierKind.USERNAME)
        return identifier.value if identifier else None

    @property
    def is_anonymous(self) -> bool:
        """True when the user has no email, phone, or username identifier.

        Federated identifiers do not count.
        """
        return self.email is None and self.phone is None and self.username is None

    @property
    def is_email_verified(self) -> bool:
        identifier = self._first_identifier(IdentifierKind.EMAIL)
        return identifier is not None and identifier.verified

    @property
    def is_phone_verified(self) -> bool:
        identifier = self._first_identifier(IdentifierKind.PHONE)
        return identifier is not None and identifier.verified


class UserIdentifier(Base):
    """A login handle claimed by a user.

    Uniqueness is (kind, value) for every kind except federated, where it
    is (kind, value, provider). Both are partial unique indexes so the
    database rejects concurrent duplicate inserts.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        kind: "email", "phone", "username", or "federated".
        value: The handle itself.
        provider: Identity provider name (federated only).
        verified: Whether ownership of the handle has been confirmed.
        created_at: Record creation timestamp.
    """

    __tablename__ = "identifiers"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('email', 'phone', 'username', 'federated')",
            name="ck_identifiers_kind",
        ),
        CheckConstraint(
            "kind <> 'federated' OR provider IS NOT NULL",
            name="ck_identifiers_federated_provider",
        ),
        Index(
            "uq_identifiers_kind_value",
            "kind",
            "value",
            unique=True,
            postgresql_where=_NOT_FEDERATED,
            sqlite_where=_NOT_FEDERATED,
        ),
        Index(
            "uq_identifiers_federated_provider_value",
            "kind",
            "value",
            "provider",
            unique=True,
            postgresql_where=_FEDERATED,
            sqlite_where=_FEDERATED,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[str] = mapped_column(String(320), nullable=False)
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="identifiers")
