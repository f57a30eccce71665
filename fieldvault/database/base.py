"""
Declarative base for fieldvault's reference models.

Every table that holds an EncryptedType column derives from Base, so
init_database() can create the whole schema from Base.metadata. Timestamps
are stored timezone-aware in UTC.
"""

from datetime import datetime, timezone
from typing import Annotated

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Python-side default for ORM inserts, server default for raw SQL backfills
CreatedAt = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now()),
]

UpdatedAt = Annotated[
    datetime,
    mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    ),
]


class Base(DeclarativeBase):
    """Metadata root for User and Generation."""


class TimestampMixin:
    """created_at / updated_at columns for records with encrypted payloads."""

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]
