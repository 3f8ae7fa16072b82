"""Store error classes.

Lookups never raise for a miss; they return None. The classes here cover
the remaining named failures a caller has to branch on:

- IdentifierAlreadyRegisteredError: dedup key collision (conflict)
- TokenAlreadyRevokedError: lost a concurrent rotation race (conflict)
- UnexpectedStoreStateError: wiring or invariant violation, never retried
- OperationNotImplementedError: operation exists but is not built yet

Database errors (sqlalchemy.exc.SQLAlchemyError) are not wrapped and
propagate unchanged.
"""

from typing import Any


class AuthStoreError(Exception):
    """Base class for store errors.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_IMPLEMENTED").
        message: Human-readable error message.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class IdentifierAlreadyRegisteredError(AuthStoreError):
    """An identifier with the same dedup key already exists.

    The dedup key is (kind, value), or (kind, value, provider) for
    federated identifiers. Callers decide whether this means "account
    exists" (login path) or a hard error.
    """

    def __init__(self, kind: str, provider: str | None = None) -> None:
        self.kind = kind
        self.provider = provider
        if kind == "federated" and provider:
            message = f"Federated identifier for provider '{provider}' is already registered"
        else:
            message = f"{kind.capitalize()} is already registered"
        super().__init__(
            code="IDENTIFIER_ALREADY_REGISTERED",
            message=message,
            details=[{"kind": kind, "provider": provider}],
        )


class TokenAlreadyRevokedError(AuthStoreError):
    """A refresh token was revoked between the caller's check and rotation.

    Raised when two requests rotate the same token concurrently; only the
    first one wins and the loser's new token is never written. Callers
    should treat it like presenting an already-rotated token.
    """

    def __init__(self, token_id: str) -> None:
        self.token_id = token_id
        super().__init__(
            code="TOKEN_ALREADY_REVOKED",
            message="Refresh token has already been revoked",
            details=[{"token_id": token_id}],
        )


class UnexpectedStoreStateError(AuthStoreError):
    """Store state or arguments that correct wiring never produces.

    Examples: an entity without a primary key handed to a mutating
    operation, or a reference resolving to the wrong kind of record.
    """

    def __init__(self, message: str) -> None:
        super().__init__(code="UNEXPECTED_STORE_STATE", message=message)


class OperationNotImplementedError(AuthStoreError):
    """Operation is declared but intentionally not built yet."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            code="NOT_IMPLEMENTED",
            message=f"{operation} is not implemented yet",
        )
