"""
User Model.

Email is stored encrypted. Lookups never touch the encrypted column
directly; they go through the blind index columns:

    email_hash        HMAC-SHA256 blind index (plain SHA-256 if written without a key)
    email_hash_plain  Unkeyed SHA-256, kept so lookups survive key configuration changes
    email_lookup      Normalized plaintext, only present on legacy records
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fieldvault.database.base import Base, TimestampMixin
from fieldvault.security import EncryptedType


class User(Base, TimestampMixin):
    """
    User model with an encrypted, searchable email.

    Attributes:
        id: Integer primary key.
        user_id: Stable public identifier derived from the email hash.
        email: Email address (Encrypted envelope, or legacy plaintext).
        email_hash: Blind index under the key configuration at write time.
        email_hash_plain: Unkeyed SHA-256 of the normalized email.
        email_lookup: Legacy normalized plaintext email (not written for new users).
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=True,
        comment="Public identifier, email_ + first 16 chars of email_hash",
    )

    email: Mapped[str | None] = mapped_column(
        EncryptedType(),
        nullable=True,
        comment="Email address (Encrypted)",
    )
    email_hash: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=True,
        comment="Blind index of email for lookups",
    )
    email_hash_plain: Mapped[str | None] = mapped_column(
        String(64),
        index=True,
        nullable=True,
        comment="Unkeyed SHA-256 of email (lookup fallback)",
    )
    email_lookup: Mapped[str | None] = mapped_column(
        String(320),
        index=True,
        nullable=True,
        comment="Legacy plaintext lookup field",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, user_id={self.user_id})>"
