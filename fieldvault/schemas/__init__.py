"""Pydantic schemas for the persistence services."""

from fieldvault.schemas.user import BaseSchema, GenerationRead, UserCreate, UserRead

__all__ = [
    "BaseSchema",
    "GenerationRead",
    "UserCreate",
    "UserRead",
]
