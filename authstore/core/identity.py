"""Identifier and credential value objects passed into the user store.

An Identifier is a claimed login handle. Its dedup key is (kind, value),
except for federated identifiers where the provider is part of the key:
the same external user id may legitimately appear under two providers.
"""

from dataclasses import dataclass, field
from enum import Enum


class IdentifierKind(str, Enum):
    """Kinds of login handle a user can claim."""

    EMAIL = "email"
    PHONE = "phone"
    USERNAME = "username"
    FEDERATED = "federated"


class CredentialKind(str, Enum):
    """Kinds of credential that can be attached at registration."""

    PASSWORD = "password"


@dataclass(frozen=True)
class Identifier:
    """A login handle to register, link, or look up.

    Attributes:
        kind: Identifier kind.
        value: Email address, phone number, username, or provider user id.
        provider: Identity provider name. Required for federated, else None.
    """

    kind: IdentifierKind
    value: str
    provider: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", IdentifierKind(self.kind))
        if self.kind is IdentifierKind.FEDERATED and not self.provider:
            raise ValueError("Federated identifiers require a provider")
        if self.kind is not IdentifierKind.FEDERATED and self.provider is not None:
            raise ValueError(f"Provider is only meaningful for federated identifiers, not {self.kind.value}")

    @classmethod
    def email(cls, value: str) -> "Identifier":
        return cls(IdentifierKind.EMAIL, value)

    @classmethod
    def phone(cls, value: str) -> "Identifier":
        return cls(IdentifierKind.PHONE, value)

    @classmethod
    def username(cls, value: str) -> "Identifier":
        return cls(IdentifierKind.USERNAME, value)

    @classmethod
    def federated(cls, provider: str, value: str) -> "Identifier":
        return cls(IdentifierKind.FEDERATED, value, provider)

    @property
    def is_federated(self) -> bool:
        return self.kind is IdentifierKind.FEDERATED


@dataclass(frozen=True)
class Credential:
    """A secret attached to a user at registration or linking time.

    The secret is already hashed by the caller; this package never sees
    plain passwords.
    """

    kind: CredentialKind
    secret: str = field(repr=False)

    @classmethod
    def password(cls, password_hash: str) -> "Credential":
        return cls(CredentialKind.PASSWORD, password_hash)

    @property
    def password_hash(self) -> str | None:
        """The password hash, or None for non-password credentials."""
        if self.kind is CredentialKind.PASSWORD:
            return self.secret
        return None
