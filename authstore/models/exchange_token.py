"""Exchange token model - single-use handoff tokens.

Bridges an external authentication step (e.g. an OAuth callback) to the
caller's own session issuance. Short TTL, strictly single use.
"""

import uuid
from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from authstore.models.base import Base, OwnedByUserMixin, ensure_aware, utcnow


class ExchangeToken(Base, OwnedByUserMixin):
    """Hashed exchange token.

    Attributes:
        id: UUID primary key.
        token_hash: Hash of the token handed to the client. Unique.
        user_id: FK to users table (from OwnedByUserMixin).
        expires_at: Token expiry timestamp. Indexed for the cleanup sweep.
        consumed_at: When the token was exchanged. NULL = unused.
        created_at: Issue timestamp (from OwnedByUserMixin).
    """

    __tablename__ = "exchange_tokens"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    token_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_expired(self) -> bool:
        return ensure_aware(self.expires_at) <= utcnow()

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    @property
    def is_valid(self) -> bool:
        """True if neither consumed nor expired."""
        return not self.is_consumed and not self.is_expired
