"""
Persistence models.

Importing this package registers all models with Base.metadata.
"""

from fieldvault.models.generation import Generation
from fieldvault.models.user import User

__all__ = [
    "Generation",
    "User",
]
