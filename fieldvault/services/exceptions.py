"""
Service-layer exceptions.
"""


class UserServiceError(Exception):
    """Base exception for user persistence errors."""
    pass


class UserValidationError(UserServiceError):
    """Raised when user input fails validation (e.g. malformed email)."""
    pass


class UserNotFoundError(UserServiceError):
    """Raised when no user matches any lookup fallback."""
    pass
