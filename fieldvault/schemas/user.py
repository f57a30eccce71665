"""
User Schemas.

Pydantic models validating user input before it is encrypted and indexed.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fieldvault.security import normalize_value

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    """Registration input. Email is validated and normalized before encryption."""

    email: str = Field(..., min_length=3, max_length=320, description="User email address")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = normalize_value(value)
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError("Please enter a valid email address")
        return normalized


class UserRead(BaseSchema):
    """User data as returned to application code (email already decrypted)."""

    id: int
    user_id: Optional[str] = None
    email: Optional[str] = None
    email_hash: Optional[str] = None
    created_at: datetime


class GenerationRead(BaseSchema):
    """Generation record with a decrypted prompt."""

    generation_id: str
    user_id: str
    prompt: str
    created_at: datetime
