"""SQLAlchemy implementation of the verification and reset code stores.

The four code tables share one shape, so a single repository class is
instantiated once per table. Codes are looked up by the channel value
they were sent to (email address or phone number) plus the code hash.
"""

import logging
from datetime import datetime
from typing import Generic

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from authstore.core.database import Database
from authstore.core.errors import UnexpectedStoreStateError
from authstore.models import User, utcnow
from authstore.repositories.base import CodeStore, CodeT, require_id

logger = logging.getLogger(__name__)


class CodeRepository(CodeStore[CodeT], Generic[CodeT]):
    """Code store for one of the four code tables.

    Attributes:
        model: Mapped code class this store reads and writes.
    """

    def __init__(self, database: Database, model: type[CodeT]) -> None:
        self._database = database
        self.model = model

    def _check_model(self, code: CodeT) -> None:
        if not isinstance(code, self.model):
            msg = (
                f"{self.model.__name__} store was given a "
                f"{type(code).__name__}; check which store the code came from"
            )
            logger.error(msg, extra={"code_id": str(code.id)})
            raise UnexpectedStoreStateError(msg)

    async def create(
        self,
        user: User,
        channel_value: str,
        code_hash: str,
        expires_at: datetime,
    ) -> CodeT:
        """Store a new outstanding code.

        Args:
            user: Owner. Must already be persisted.
            channel_value: Email address or phone number the code was sent to.
            code_hash: Hash of the code.
            expires_at: Absolute expiry chosen by the caller.

        Returns:
            The persisted code with zero failed attempts.
        """
        code = self.model(
            user_id=require_id(user),
            channel_value=channel_value,
            code_hash=code_hash,
            expires_at=expires_at,
        )
        async with self._database.transaction() as db:
            db.add(code)
            await db.flush()

        logger.debug(
            "Created code",
            extra={"table": self.model.__tablename__, "user_id": str(code.user_id)},
        )
        return code

    async def find(self, channel_value: str, code_hash: str) -> CodeT | None:
        """Look up an outstanding code.

        If two outstanding codes for the channel hash to the same value
        (short numeric codes can collide), the most recent one wins.

        Args:
            channel_value: Email address or phone number the code was sent to.
            code_hash: Hash of the code the user presented.

        Returns:
            The code with its owner loaded, or None if no code matches or
            the matching code was invalidated.
        """
        model = self.model
        stmt = (
            select(model)
            .where(
                model.channel_value == channel_value,
                model.code_hash == code_hash,
                model.invalidated_at.is_(None),
            )
            .options(selectinload(model.user).selectinload(User.identifiers))
            .order_by(model.created_at.desc())
            .limit(1)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            return result.scalars().first()

    async def invalidate_all(self, channel_value: str) -> int:
        model = self.model
        stmt = (
            update(model)
            .where(model.channel_value == channel_value, model.invalidated_at.is_(None))
            .values(invalidated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            row_count: int = result.rowcount  # type: ignore[attr-defined]

        logger.info(
            "Invalidated codes",
            extra={"table": model.__tablename__, "invalidated": row_count},
        )
        return row_count

    async def increment_failed_attempts(self, code: CodeT) -> int:
        """Add one failed attempt in the database and on ``code``.

        The increment is a single ``failed_attempts + 1`` UPDATE, so
        concurrent wrong guesses are all counted.

        Args:
            code: Code that received a wrong guess.

        Returns:
            The stored counter after the increment.

        Raises:
            UnexpectedStoreStateError: If the code belongs to another table
                or no longer exists.
        """
        self._check_model(code)
        code_id = require_id(code)
        model = self.model

        async with self._database.transaction() as db:
            await db.execute(
                update(model)
                .where(model.id == code_id)
                .values(failed_attempts=model.failed_attempts + 1)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(
                select(model.failed_attempts).where(model.id == code_id)
            )
            failed_attempts = result.scalar_one_or_none()
            if failed_attempts is None:
                msg = f"{model.__name__} {code_id} no longer exists"
                logger.error(msg)
                raise UnexpectedStoreStateError(msg)

        set_committed_value(code, "failed_attempts", failed_attempts)
        return failed_attempts
