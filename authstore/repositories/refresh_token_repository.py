"""SQLAlchemy implementation of the refresh token store.

Rotation links each token to its successor through ``replaced_by``.
Presenting a token that was already rotated is a reuse signal; the caller
answers it with ``revoke_family_from`` which walks the chain forward and
revokes every descendant.

Security-relevant events are emitted through structlog so they land in
the audit stream alongside the caller's own auth events.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from authstore.core.config import settings
from authstore.core.database import Database
from authstore.core.errors import TokenAlreadyRevokedError
from authstore.models import RefreshToken, User, utcnow
from authstore.repositories.base import RefreshTokenStore, require_id

logger = structlog.get_logger()


class RefreshTokenRepository(RefreshTokenStore):
    """Refresh token store backed by the ``refresh_tokens`` table."""

    def __init__(
        self,
        database: Database,
        *,
        family_max_length: int | None = None,
    ) -> None:
        """Bind the store to a database.

        Args:
            database: Database to run transactions against.
            family_max_length: Upper bound on tokens visited by one family
                walk. Defaults to settings.refresh_token_family_max_length.
        """
        self._database = database
        self._family_max_length = (
            family_max_length
            if family_max_length is not None
            else settings.refresh_token_family_max_length
        )

    @staticmethod
    async def _insert(
        db: AsyncSession,
        user: User,
        token_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        token = RefreshToken(
            user_id=require_id(user),
            token_hash=token_hash,
            expires_at=expires_at,
        )
        db.add(token)
        await db.flush()
        return token

    async def issue(
        self,
        user: User,
        token_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        """Insert an active refresh token.

        Args:
            user: Owner. Must already be persisted.
            token_hash: Hash of the secret handed to the client.
            expires_at: Absolute expiry chosen by the caller.

        Returns:
            The persisted token, neither revoked nor replaced.
        """
        async with self._database.transaction() as db:
            token = await self._insert(db, user, token_hash, expires_at)

        logger.info(
            "refresh_token_issued", user_id=str(token.user_id), token_id=str(token.id)
        )
        return token

    async def rotate(
        self,
        user: User,
        new_token_hash: str,
        expires_at: datetime,
        old_token: RefreshToken,
    ) -> RefreshToken:
        """Issue a successor and revoke ``old_token`` in one transaction.

        The old row is updated only while ``revoked_at`` is still NULL, so a
        token revoked earlier or by a concurrent rotation cannot gain a child.

        Args:
            user: Owner of both tokens.
            new_token_hash: Hash of the replacement secret.
            expires_at: Expiry of the replacement.
            old_token: Token being presented. Updated in place on success.

        Returns:
            The new active token.

        Raises:
            TokenAlreadyRevokedError: If ``old_token`` is already revoked.
                Nothing is written.
        """
        old_id = require_id(old_token)
        revoked_at = utcnow()

        async with self._database.transaction() as db:
            new_token = await self._insert(db, user, new_token_hash, expires_at)
            result = await db.execute(
                update(RefreshToken)
                .where(RefreshToken.id == old_id, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=revoked_at, replaced_by=new_token.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:  # type: ignore[attr-defined]
                # Rolls back the new token as well.
                raise TokenAlreadyRevokedError(str(old_id))

        set_committed_value(old_token, "revoked_at", revoked_at)
        set_committed_value(old_token, "replaced_by", new_token.id)

        logger.info(
            "refresh_token_rotated",
            user_id=str(new_token.user_id),
            old_token_id=str(old_id),
            new_token_id=str(new_token.id),
        )
        return new_token

    async def find_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Get a token with its owner and the owner's identifiers loaded."""
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .options(selectinload(RefreshToken.user).selectinload(User.identifiers))
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def revoke_all_for_user(self, user: User) -> int:
        user_id = require_id(user)
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            row_count: int = result.rowcount  # type: ignore[attr-defined]

        logger.info("refresh_tokens_revoked_for_user", user_id=str(user_id), revoked=row_count)
        return row_count

    async def revoke_by_hash(self, token_hash: str) -> None:
        # Already-revoked tokens keep their original timestamp.
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            await db.execute(stmt)

    async def _revoke_hop(
        self, token_id: uuid.UUID, revoked_at: datetime
    ) -> tuple[bool, bool, uuid.UUID | None]:
        """Revoke one chain member and read its successor pointer.

        Returns:
            (found, newly_revoked, replaced_by) for the token.
        """
        async with self._database.transaction() as db:
            result = await db.execute(
                update(RefreshToken)
                .where(RefreshToken.id == token_id, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=revoked_at)
                .execution_options(synchronize_session=False)
            )
            newly_revoked = result.rowcount == 1  # type: ignore[attr-defined]
            row = (
                await db.execute(
                    select(RefreshToken.replaced_by).where(RefreshToken.id == token_id)
                )
            ).one_or_none()

        if row is None:
            return False, False, None
        return True, newly_revoked, row.replaced_by

    async def revoke_family_from(self, token: RefreshToken) -> int:
        """Revoke a token and every successor reachable through ``replaced_by``.

        Each hop commits on its own, so a failure part-way leaves the hops
        already walked revoked. The walk stops at the end of the chain, at a
        successor that no longer exists, on a cycle, or after
        ``family_max_length`` tokens.

        Args:
            token: Start of the walk, usually the reused token.

        Returns:
            Number of tokens this call revoked. Tokens that were already
            revoked are walked through but not counted.
        """
        start_id = require_id(token)
        log = logger.bind(user_id=str(token.user_id), start_token_id=str(start_id))

        visited: set[uuid.UUID] = set()
        revoked = 0
        revoked_at = utcnow()
        current_id: uuid.UUID | None = start_id
        while current_id is not None:
            if current_id in visited:
                log.error("refresh_token_family_cycle", token_id=str(current_id))
                break
            if len(visited) >= self._family_max_length:
                log.error(
                    "refresh_token_family_truncated",
                    max_length=self._family_max_length,
                    next_token_id=str(current_id),
                )
                break
            visited.add(current_id)

            found, newly_revoked, next_id = await self._revoke_hop(current_id, revoked_at)
            if not found:
                log.warning("refresh_token_family_broken", missing_token_id=str(current_id))
                break
            if newly_revoked:
                revoked += 1
                if current_id == start_id:
                    set_committed_value(token, "revoked_at", revoked_at)
            current_id = next_id

        log.warning("refresh_token_family_revoked", revoked=revoked, walked=len(visited))
        return revoked
