"""Magic link token store.

The interface is part of the public store so callers can be written
against it, but there is no backing table yet: every method raises
OperationNotImplementedError rather than pretending to succeed.
"""

from datetime import datetime
from typing import Any, NoReturn

from authstore.core.errors import OperationNotImplementedError
from authstore.core.identity import Identifier
from authstore.models import User
from authstore.repositories.base import MagicLinkTokenStore


class MagicLinkTokenRepository(MagicLinkTokenStore):
    """Placeholder magic link store with no backing table.

    Every operation raises OperationNotImplementedError.
    """

    async def create_email_magic_link(
        self,
        user: User | None,
        identifier: Identifier,
        token_hash: str,
        session_token_hash: str | None,
        expires_at: datetime,
    ) -> NoReturn:
        raise OperationNotImplementedError("create_email_magic_link")

    async def find_email_magic_link(self, token_hash: str) -> NoReturn:
        raise OperationNotImplementedError("find_email_magic_link")

    async def invalidate_email_magic_links(self, identifier: Identifier) -> NoReturn:
        raise OperationNotImplementedError("invalidate_email_magic_links")

    async def increment_failed_attempts(self, magic_link: Any) -> NoReturn:
        raise OperationNotImplementedError("increment_failed_attempts")
