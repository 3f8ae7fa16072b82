"""Refresh token model - rotating session credentials.

Tokens form a singly-linked rotation chain through ``replaced_by``. A
revoked token is terminal for authentication but stays addressable so
the chain can still be walked for reuse detection.
"""

import uuid
from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from authstore.models.base import Base, OwnedByUserMixin, ensure_aware, utcnow


class RefreshToken(Base, OwnedByUserMixin):
    """Hashed refresh token.

    Attributes:
        id: UUID primary key.
        token_hash: Hash of the token handed to the client. Unique.
        user_id: FK to users table (from OwnedByUserMixin).
        expires_at: Token expiry timestamp.
        created_at: Issue timestamp (from OwnedByUserMixin).
        revoked_at: When the token was revoked or rotated. NULL = active.
        replaced_by: Id of the token that superseded this one on rotation.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    token_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Plain pointer, no FK: the successor may be gone while the chain is walked.
    replaced_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    @property
    def is_expired(self) -> bool:
        return ensure_aware(self.expires_at) <= utcnow()

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    @property
    def is_valid(self) -> bool:
        """True if neither revoked nor expired."""
        return not self.is_revoked and not self.is_expired
