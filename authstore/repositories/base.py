"""Abstract store interfaces.

Callers depend on these interfaces only; DatabaseStore provides the
SQLAlchemy implementation. Every operation returns a populated entity,
None for "not found", or raises one of the errors in authstore.core.errors.
Database errors propagate unchanged.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Protocol, TypeVar

from authstore.core.errors import UnexpectedStoreStateError
from authstore.core.identity import Credential, Identifier, IdentifierKind
from authstore.models import (
    Code,
    EmailResetCode,
    EmailVerificationCode,
    ExchangeToken,
    PhoneResetCode,
    PhoneVerificationCode,
    RefreshToken,
    User,
    UserIdentifier,
)

CodeT = TypeVar("CodeT", bound=Code)
EmailCodeT = TypeVar("EmailCodeT", bound=Code)
PhoneCodeT = TypeVar("PhoneCodeT", bound=Code)


class _HasId(Protocol):
    id: uuid.UUID | None


def require_id(entity: _HasId) -> uuid.UUID:
    """Return the entity's primary key or fail loudly.

    Raises:
        UnexpectedStoreStateError: If the entity was never persisted.
    """
    entity_id = entity.id
    if entity_id is None:
        msg = f"{type(entity).__name__} has no id; it was never persisted"
        raise UnexpectedStoreStateError(msg)
    return entity_id


class UserStore(ABC):
    """Identity graph: users and their identifiers."""

    @abstractmethod
    async def create(
        self,
        identifier: Identifier,
        credential: Credential | None = None,
    ) -> User:
        """Create a user together with its first identifier.

        Federated identifiers are created verified, all others unverified.
        A password credential sets the user's password hash.

        Raises:
            IdentifierAlreadyRegisteredError: If the dedup key is taken.
        """

    @abstractmethod
    async def find_by_id(self, user_id: uuid.UUID | str) -> User | None:
        """Fetch a user with identifiers loaded; malformed ids are a miss."""

    @abstractmethod
    async def find_by_identifier(self, identifier: Identifier) -> User | None:
        """Fetch the owner of an identifier with all identifiers loaded."""

    @abstractmethod
    async def add_identifier(
        self,
        identifier: Identifier,
        user: User,
        credential: Credential | None = None,
    ) -> UserIdentifier:
        """Link another identifier to an existing user.

        A password credential also overwrites the password hash (upgrading
        a federated-only account to password login).

        Raises:
            IdentifierAlreadyRegisteredError: If the dedup key is taken.
        """

    @abstractmethod
    async def mark_verified(self, user: User, kind: IdentifierKind | str) -> int:
        """Mark every identifier of ``kind`` (email or phone) verified.

        Returns:
            Number of identifiers updated.
        """

    async def mark_email_verified(self, user: User) -> int:
        return await self.mark_verified(user, IdentifierKind.EMAIL)

    async def mark_phone_verified(self, user: User) -> int:
        return await self.mark_verified(user, IdentifierKind.PHONE)

    @abstractmethod
    async def set_password(self, user: User, password_hash: str) -> None:
        """Overwrite the user's password hash unconditionally."""

    @abstractmethod
    async def delete(self, user: User) -> bool:
        """Delete a user; the store cascades to everything the user owns.

        Returns:
            True if a row was deleted.
        """

    @abstractmethod
    async def create_with_email(self, email: str, *, verified: bool) -> User:
        """Create a user from a bare email address (not built yet)."""

    @abstractmethod
    async def create_with_phone(self, phone: str, *, verified: bool) -> User:
        """Create a user from a bare phone number (not built yet)."""


class RefreshTokenStore(ABC):
    """Refresh token issuance, rotation, and revocation."""

    @abstractmethod
    async def issue(
        self,
        user: User,
        token_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        """Create an active refresh token for ``user``."""

    @abstractmethod
    async def rotate(
        self,
        user: User,
        new_token_hash: str,
        expires_at: datetime,
        old_token: RefreshToken,
    ) -> RefreshToken:
        """Replace ``old_token`` with a new active token in one transaction.

        The old token ends up revoked with ``replaced_by`` pointing at the
        new token. Nothing is written if any step fails.

        Only an unrevoked token can be rotated. A token that is already
        revoked, whether by an earlier rotation, ``revoke_by_hash``,
        ``revoke_all_for_user`` or a concurrent caller, is left untouched.

        Raises:
            TokenAlreadyRevokedError: If ``old_token`` is already revoked in
                the database.
        """

    @abstractmethod
    async def find_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Fetch a token with its owner and the owner's identifiers loaded."""

    @abstractmethod
    async def revoke_all_for_user(self, user: User) -> int:
        """Revoke every active token of ``user`` (logout everywhere)."""

    @abstractmethod
    async def revoke_by_hash(self, token_hash: str) -> None:
        """Revoke one token; unknown hashes are ignored."""

    @abstractmethod
    async def revoke_family_from(self, token: RefreshToken) -> int:
        """Revoke ``token`` and every token that descends from it.

        Used as the response to reuse of an already-rotated token.

        Returns:
            Number of tokens newly revoked.
        """


class ExchangeTokenStore(ABC):
    """Single-use, short-lived handoff tokens."""

    @abstractmethod
    async def create(
        self,
        user: User,
        token_hash: str,
        expires_at: datetime,
    ) -> ExchangeToken:
        """Create a token; the returned token has its owner loaded."""

    @abstractmethod
    async def find(self, token_hash: str) -> ExchangeToken | None:
        """Fetch a token with its owner and the owner's identifiers loaded."""

    @abstractmethod
    async def consume(self, token: ExchangeToken) -> None:
        """Stamp ``consumed_at`` (overwrites any earlier stamp)."""

    @abstractmethod
    async def cleanup_expired(self, before: datetime) -> int:
        """Hard delete tokens expiring before ``before``, consumed or not.

        Returns:
            Number of deleted rows.
        """


class CodeStore(ABC, Generic[CodeT]):
    """Expiring, attempt-limited codes for one purpose and channel."""

    @abstractmethod
    async def create(
        self,
        user: User,
        channel_value: str,
        code_hash: str,
        expires_at: datetime,
    ) -> CodeT:
        """Store a new code. Several outstanding codes per channel are allowed."""

    @abstractmethod
    async def find(self, channel_value: str, code_hash: str) -> CodeT | None:
        """Fetch a code that has not been invalidated.

        Invalidated and never-issued codes are both reported as None.
        """

    @abstractmethod
    async def invalidate_all(self, channel_value: str) -> int:
        """Burn every outstanding code for ``channel_value``.

        Returns:
            Number of codes invalidated.
        """

    @abstractmethod
    async def increment_failed_attempts(self, code: CodeT) -> int:
        """Atomically add one failed attempt.

        The store only owns the counter; callers compare it against their
        own max-attempts policy.

        Returns:
            The counter value after the increment.
        """


class MagicLinkTokenStore(ABC):
    """Email magic-link tokens."""

    @abstractmethod
    async def create_email_magic_link(
        self,
        user: User | None,
        identifier: Identifier,
        token_hash: str,
        session_token_hash: str | None,
        expires_at: datetime,
    ) -> Any: ...

    @abstractmethod
    async def find_email_magic_link(self, token_hash: str) -> Any: ...

    @abstractmethod
    async def invalidate_email_magic_links(self, identifier: Identifier) -> None: ...

    @abstractmethod
    async def increment_failed_attempts(self, magic_link: Any) -> None: ...


@dataclass(frozen=True)
class CodeChannels(Generic[EmailCodeT, PhoneCodeT]):
    """Email and phone code stores for one purpose."""

    email: CodeStore[EmailCodeT]
    phone: CodeStore[PhoneCodeT]


class Store(ABC):
    """Every sub-store the authentication layer needs."""

    @property
    @abstractmethod
    def users(self) -> UserStore: ...

    @property
    @abstractmethod
    def refresh_tokens(self) -> RefreshTokenStore: ...

    @property
    @abstractmethod
    def exchange_tokens(self) -> ExchangeTokenStore: ...

    @property
    @abstractmethod
    def verification_codes(
        self,
    ) -> CodeChannels[EmailVerificationCode, PhoneVerificationCode]: ...

    @property
    @abstractmethod
    def reset_codes(self) -> CodeChannels[EmailResetCode, PhoneResetCode]: ...

    @property
    @abstractmethod
    def magic_link_tokens(self) -> MagicLinkTokenStore: ...
