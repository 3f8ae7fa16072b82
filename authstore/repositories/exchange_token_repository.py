"""SQLAlchemy implementation of the exchange token store.

Exchange tokens bridge an external login step (e.g. an OAuth callback) to
the caller's session issuance. Validity is judged by the caller from the
returned entity; this store only records creation, consumption, and the
expiry sweep.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from authstore.core.database import Database
from authstore.models import ExchangeToken, User, ensure_aware, utcnow
from authstore.repositories.base import ExchangeTokenStore, require_id

logger = logging.getLogger(__name__)

_WITH_OWNER = selectinload(ExchangeToken.user).selectinload(User.identifiers)


class ExchangeTokenRepository(ExchangeTokenStore):
    """Exchange token store backed by the ``exchange_tokens`` table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def create(
        self,
        user: User,
        token_hash: str,
        expires_at: datetime,
    ) -> ExchangeToken:
        """Store a new exchange token.

        Args:
            user: Owner of the token.
            token_hash: Hash of the token handed to the client.
            expires_at: Token expiry timestamp.

        Returns:
            The created token with its owner and identifiers loaded.
        """
        async with self._database.transaction() as db:
            token = ExchangeToken(
                user_id=require_id(user),
                token_hash=token_hash,
                expires_at=expires_at,
            )
            db.add(token)
            await db.flush()

            stmt = (
                select(ExchangeToken)
                .where(ExchangeToken.id == token.id)
                .options(_WITH_OWNER)
                .execution_options(populate_existing=True)
            )
            result = await db.execute(stmt)
            token = result.scalar_one()

        logger.debug("Created exchange token", extra={"user_id": str(token.user_id)})
        return token

    async def find(self, token_hash: str) -> ExchangeToken | None:
        stmt = (
            select(ExchangeToken)
            .where(ExchangeToken.token_hash == token_hash)
            .options(_WITH_OWNER)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def consume(self, token: ExchangeToken) -> None:
        token_id = require_id(token)
        consumed_at = utcnow()
        stmt = (
            update(ExchangeToken)
            .where(ExchangeToken.id == token_id)
            .values(consumed_at=consumed_at)
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            await db.execute(stmt)

        set_committed_value(token, "consumed_at", consumed_at)

    async def cleanup_expired(self, before: datetime) -> int:
        """Delete every exchange token that expired before a cutoff.

        Consumed tokens are deleted too; nothing reads them after use.

        Args:
            before: Cutoff. Tokens with expires_at < before are removed.

        Returns:
            Number of deleted rows.
        """
        stmt = (
            delete(ExchangeToken)
            .where(ExchangeToken.expires_at < ensure_aware(before))
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            row_count: int = result.rowcount  # type: ignore[attr-defined]

        logger.info(
            "Deleted expired exchange tokens",
            extra={"deleted": row_count, "before": before.isoformat()},
        )
        return row_count
