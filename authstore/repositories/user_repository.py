"""SQLAlchemy implementation of the user store.

Every method runs in its own transaction. Returned users always have
their identifiers loaded, so the convenience accessors (``email``,
``is_anonymous``, ...) work on the detached objects.

Writes that change a caller-held object (password, verification flags)
are issued as bulk UPDATEs and then mirrored onto that object with
``set_committed_value`` so the caller does not have to re-fetch.
"""

import logging
import uuid

from sqlalchemy import ColumnElement, delete, inspect, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from authstore.core.database import Database, is_unique_violation
from authstore.core.errors import (
    IdentifierAlreadyRegisteredError,
    OperationNotImplementedError,
)
from authstore.core.identity import Credential, Identifier, IdentifierKind
from authstore.models import User, UserIdentifier
from authstore.repositories.base import UserStore, require_id

logger = logging.getLogger(__name__)

_VERIFIABLE_KINDS: frozenset[IdentifierKind] = frozenset(
    {IdentifierKind.EMAIL, IdentifierKind.PHONE}
)


def _dedup_clauses(identifier: Identifier) -> list[ColumnElement[bool]]:
    clauses = [
        UserIdentifier.kind == identifier.kind.value,
        UserIdentifier.value == identifier.value,
    ]
    if identifier.is_federated:
        clauses.append(UserIdentifier.provider == identifier.provider)
    return clauses


def _new_identifier(identifier: Identifier) -> UserIdentifier:
    # Federated handles were proven by the identity provider.
    return UserIdentifier(
        kind=identifier.kind.value,
        value=identifier.value,
        provider=identifier.provider,
        verified=identifier.is_federated,
    )


def _already_registered(identifier: Identifier) -> IdentifierAlreadyRegisteredError:
    return IdentifierAlreadyRegisteredError(identifier.kind.value, identifier.provider)


class UserRepository(UserStore):
    """User store backed by the ``users`` and ``identifiers`` tables."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def _ensure_unregistered(
        self, db: AsyncSession, identifier: Identifier
    ) -> None:
        stmt = select(UserIdentifier.id).where(*_dedup_clauses(identifier)).limit(1)
        result = await db.execute(stmt)
        if result.first() is not None:
            raise _already_registered(identifier)

    async def _flush_identifier(self, db: AsyncSession, identifier: Identifier) -> None:
        # The pre-check is racy; the partial unique indexes are authoritative.
        try:
            await db.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise _already_registered(identifier) from exc
            raise

    async def create(
        self,
        identifier: Identifier,
        credential: Credential | None = None,
    ) -> User:
        """Create a user with its first identifier in one transaction.

        Args:
            identifier: First login identifier. Federated ones start verified.
            credential: Optional password credential.

        Returns:
            The persisted user with ``identifiers`` loaded.

        Raises:
            IdentifierAlreadyRegisteredError: If any user already owns the
                identifier.
        """
        async with self._database.transaction() as db:
            await self._ensure_unregistered(db, identifier)
            user = User(password_hash=credential.password_hash if credential else None)
            user.identifiers = [_new_identifier(identifier)]
            db.add(user)
            await self._flush_identifier(db, identifier)

        logger.info(
            "Created user",
            extra={"user_id": str(user.id), "identifier_kind": identifier.kind.value},
        )
        return user

    async def find_by_id(self, user_id: uuid.UUID | str) -> User | None:
        """Get a user by primary key.

        Args:
            user_id: UUID, or its string form.

        Returns:
            User with identifiers loaded, or None if not found or the
            string is not a UUID.
        """
        if isinstance(user_id, str):
            try:
                user_id = uuid.UUID(user_id)
            except ValueError:
                return None

        async with self._database.transaction() as db:
            return await db.get(User, user_id, options=[selectinload(User.identifiers)])

    async def find_by_identifier(self, identifier: Identifier) -> User | None:
        """Get the user owning an identifier, or None."""
        stmt = (
            select(User)
            .join(User.identifiers)
            .where(*_dedup_clauses(identifier))
            .options(selectinload(User.identifiers))
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def add_identifier(
        self,
        identifier: Identifier,
        user: User,
        credential: Credential | None = None,
    ) -> UserIdentifier:
        """Link another identifier to an existing user.

        Args:
            identifier: Identifier to add.
            user: Owner. Must already be persisted.
            credential: Optional password, replacing the current hash.

        Returns:
            The new UserIdentifier row. The passed user is updated in place.

        Raises:
            IdentifierAlreadyRegisteredError: If any user already owns the
                identifier.
        """
        user_id = require_id(user)
        password_hash = credential.password_hash if credential else None

        async with self._database.transaction() as db:
            await self._ensure_unregistered(db, identifier)
            record = _new_identifier(identifier)
            record.user_id = user_id
            db.add(record)
            await self._flush_identifier(db, identifier)
            if password_hash is not None:
                await db.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(password_hash=password_hash)
                    .execution_options(synchronize_session=False)
                )

        if password_hash is not None:
            set_committed_value(user, "password_hash", password_hash)
        if "identifiers" not in inspect(user).unloaded:
            set_committed_value(user, "identifiers", [*user.identifiers, record])

        logger.info(
            "Linked identifier",
            extra={
                "user_id": str(user_id),
                "identifier_kind": identifier.kind.value,
                "password_set": password_hash is not None,
            },
        )
        return record

    async def mark_verified(self, user: User, kind: IdentifierKind | str) -> int:
        """Mark every identifier of one kind verified.

        Args:
            user: Owner of the identifiers.
            kind: Either email or phone.

        Returns:
            Number of identifiers updated.

        Raises:
            ValueError: If kind is not email or phone.
        """
        kind = IdentifierKind(kind)
        if kind not in _VERIFIABLE_KINDS:
            msg = f"Only email and phone identifiers can be verified, not {kind.value}"
            raise ValueError(msg)
        user_id = require_id(user)

        stmt = (
            update(UserIdentifier)
            .where(
                UserIdentifier.user_id == user_id,
                UserIdentifier.kind == kind.value,
            )
            .values(verified=True)
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            row_count: int = result.rowcount  # type: ignore[attr-defined]

        if "identifiers" not in inspect(user).unloaded:
            for record in user.identifiers:
                if record.kind == kind.value:
                    set_committed_value(record, "verified", True)
        return row_count

    async def set_password(self, user: User, password_hash: str) -> None:
        """Replace the user's password hash and mirror it onto ``user``."""
        user_id = require_id(user)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash)
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            await db.execute(stmt)

        set_committed_value(user, "password_hash", password_hash)
        logger.info("Password updated", extra={"user_id": str(user_id)})

    async def delete(self, user: User) -> bool:
        """Delete a user row.

        Identifiers, tokens, and codes go with it through ON DELETE CASCADE.

        Args:
            user: User to delete.

        Returns:
            True if the user existed.
        """
        user_id = require_id(user)
        stmt = (
            delete(User)
            .where(User.id == user_id)
            .execution_options(synchronize_session=False)
        )
        async with self._database.transaction() as db:
            result = await db.execute(stmt)
            row_count: int = result.rowcount  # type: ignore[attr-defined]

        logger.info(
            "Deleted user", extra={"user_id": str(user_id), "deleted": row_count > 0}
        )
        return row_count > 0

    async def create_with_email(self, email: str, *, verified: bool) -> User:
        raise OperationNotImplementedError("create_with_email")

    async def create_with_phone(self, phone: str, *, verified: bool) -> User:
        raise OperationNotImplementedError("create_with_phone")
