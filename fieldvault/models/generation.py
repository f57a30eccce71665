"""
Generation Model.

Stores one AI generation request. The prompt is sensitive user content
and is encrypted at rest.
"""

from uuid import uuid4

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fieldvault.database.base import Base, TimestampMixin
from fieldvault.security import EncryptedType


class Generation(Base, TimestampMixin):
    """Generation record with an encrypted prompt."""

    __tablename__ = "generations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    generation_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        index=True,
        default=lambda: uuid4().hex,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        nullable=False,
    )
    prompt: Mapped[str] = mapped_column(
        EncryptedType(),
        nullable=False,
        comment="Generation prompt (Encrypted)",
    )

    def __repr__(self) -> str:
        return f"<Generation(generation_id={self.generation_id}, user_id={self.user_id})>"
