"""Aggregate store over one Database.

Usage:
    database = Database.from_settings()
    await database.create_schema()  # once, from the bootstrap layer
    store = DatabaseStore(database)
    user = await store.users.create(Identifier.email("a@example.com"))

Constructing a DatabaseStore has no side effects on the schema.
"""

from authstore.core.config import Settings, settings
from authstore.core.database import Database
from authstore.models import (
    EmailResetCode,
    EmailVerificationCode,
    PhoneResetCode,
    PhoneVerificationCode,
)
from authstore.repositories.base import (
    CodeChannels,
    ExchangeTokenStore,
    MagicLinkTokenStore,
    RefreshTokenStore,
    Store,
    UserStore,
)
from authstore.repositories.code_repository import CodeRepository
from authstore.repositories.exchange_token_repository import ExchangeTokenRepository
from authstore.repositories.magic_link_repository import MagicLinkTokenRepository
from authstore.repositories.refresh_token_repository import RefreshTokenRepository
from authstore.repositories.user_repository import UserRepository


class DatabaseStore(Store):
    """All sub-stores backed by SQLAlchemy.

    Attributes:
        database: Shared Database the sub-stores run their transactions on.
    """

    def __init__(self, database: Database, *, config: Settings | None = None) -> None:
        config = config or settings
        self.database = database
        self._users = UserRepository(database)
        self._refresh_tokens = RefreshTokenRepository(
            database,
            family_max_length=config.refresh_token_family_max_length,
        )
        self._exchange_tokens = ExchangeTokenRepository(database)
        self._verification_codes = CodeChannels(
            email=CodeRepository(database, EmailVerificationCode),
            phone=CodeRepository(database, PhoneVerificationCode),
        )
        self._reset_codes = CodeChannels(
            email=CodeRepository(database, EmailResetCode),
            phone=CodeRepository(database, PhoneResetCode),
        )
        self._magic_link_tokens = MagicLinkTokenRepository()

    @property
    def users(self) -> UserStore:
        return self._users

    @property
    def refresh_tokens(self) -> RefreshTokenStore:
        return self._refresh_tokens

    @property
    def exchange_tokens(self) -> ExchangeTokenStore:
        return self._exchange_tokens

    @property
    def verification_codes(
        self,
    ) -> CodeChannels[EmailVerificationCode, PhoneVerificationCode]:
        return self._verification_codes

    @property
    def reset_codes(self) -> CodeChannels[EmailResetCode, PhoneResetCode]:
        return self._reset_codes

    @property
    def magic_link_tokens(self) -> MagicLinkTokenStore:
        return self._magic_link_tokens
