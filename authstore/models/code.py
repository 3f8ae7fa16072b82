"""Verification and reset code models.

Four structurally identical tables: identity verification and password
reset, each for the email and phone channels. Columns and predicates
live in CodeColumnsMixin.
"""

from authstore.models.base import Base, CodeColumnsMixin


class EmailVerificationCode(Base, CodeColumnsMixin):
    """Code proving control of an email address."""

    __tablename__ = "email_verification_codes"


class PhoneVerificationCode(Base, CodeColumnsMixin):
    """Code proving control of a phone number."""

    __tablename__ = "phone_verification_codes"


class EmailResetCode(Base, CodeColumnsMixin):
    """Password reset code delivered by email."""

    __tablename__ = "email_reset_codes"


class PhoneResetCode(Base, CodeColumnsMixin):
    """Password reset code delivered by SMS."""

    __tablename__ = "phone_reset_codes"


VerificationCode = EmailVerificationCode | PhoneVerificationCode
ResetCode = EmailResetCode | PhoneResetCode
Code = VerificationCode | ResetCode
