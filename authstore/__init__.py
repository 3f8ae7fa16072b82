"""Persistence engine for authentication credentials.

Stores users and their identifiers, rotating refresh tokens, single-use
exchange tokens, and verification and reset codes. Issuing secrets,
hashing, and validity policy belong to the caller.

Typical wiring:
    from authstore import (
        Database,
        DatabaseStore,
        cleanup_expired_exchange_tokens,
        configure_logging,
        settings,
    )

    configure_logging(settings)
    database = Database.from_settings()
    await database.create_schema()
    store = DatabaseStore(database)

    # from the caller's scheduler
    await cleanup_expired_exchange_tokens(store)
"""

from authstore.core.config import Settings, settings
from authstore.core.database import Database
from authstore.core.errors import (
    AuthStoreError,
    IdentifierAlreadyRegisteredError,
    OperationNotImplementedError,
    TokenAlreadyRevokedError,
    UnexpectedStoreStateError,
)
from authstore.core.identity import Credential, CredentialKind, Identifier, IdentifierKind
from authstore.core.logging import configure_logging
from authstore.repositories.base import (
    CodeChannels,
    CodeStore,
    ExchangeTokenStore,
    MagicLinkTokenStore,
    RefreshTokenStore,
    Store,
    UserStore,
)
from authstore.repositories.database_store import DatabaseStore
from authstore.services.token_cleanup import (
    ExchangeTokenCleanupResult,
    cleanup_expired_exchange_tokens,
)

__all__ = [
    "AuthStoreError",
    "CodeChannels",
    "CodeStore",
    "Credential",
    "CredentialKind",
    "Database",
    "DatabaseStore",
    "ExchangeTokenCleanupResult",
    "ExchangeTokenStore",
    "Identifier",
    "IdentifierAlreadyRegisteredError",
    "IdentifierKind",
    "MagicLinkTokenStore",
    "OperationNotImplementedError",
    "RefreshTokenStore",
    "Settings",
    "Store",
    "TokenAlreadyRevokedError",
    "UnexpectedStoreStateError",
    "UserStore",
    "cleanup_expired_exchange_tokens",
    "configure_logging",
    "settings",
]
