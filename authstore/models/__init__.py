"""SQLAlchemy ORM models for authstore.

All models are exported from this module for convenient imports:
    from authstore.models import User, RefreshToken, ...

Models are organized by domain:
- user.py: User, UserIdentifier (identity graph)
- refresh_token.py: RefreshToken (rotation chain)
- exchange_token.py: ExchangeToken (single-use handoff)
- code.py: Email/Phone verification and reset codes
"""

from authstore.models.base import (
    Base,
    CodeColumnsMixin,
    OwnedByUserMixin,
    TimestampMixin,
    UTCDateTime,
    ensure_aware,
    utcnow,
)
from authstore.models.code import (
    Code,
    EmailResetCode,
    EmailVerificationCode,
    PhoneResetCode,
    PhoneVerificationCode,
    ResetCode,
    VerificationCode,
)
from authstore.models.exchange_token import ExchangeToken
from authstore.models.refresh_token import RefreshToken
from authstore.models.user import User, UserIdentifier

__all__ = [
    # Base classes
    "Base",
    "CodeColumnsMixin",
    "OwnedByUserMixin",
    "TimestampMixin",
    "UTCDateTime",
    "ensure_aware",
    "utcnow",
    # Identity
    "User",
    "UserIdentifier",
    # Tokens
    "ExchangeToken",
    "RefreshToken",
    # Codes
    "Code",
    "EmailResetCode",
    "EmailVerificationCode",
    "PhoneResetCode",
    "PhoneVerificationCode",
    "ResetCode",
    "VerificationCode",
]
