"""
Core Database Package.

Declarative base and explicit async session handling for the reference
persistence layer.
"""

from fieldvault.database.base import Base, TimestampMixin, CreatedAt, UpdatedAt
from fieldvault.database.session import (
    create_engine_from_config,
    create_session_factory,
    init_database,
    session_scope,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "CreatedAt",
    "UpdatedAt",
    # Session
    "create_engine_from_config",
    "create_session_factory",
    "init_database",
    "session_scope",
]
