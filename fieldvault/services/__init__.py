"""
Persistence services built on the encryption core.
"""

from fieldvault.services.audit import (
    FieldAuditResult,
    ValueState,
    audit_database,
    audit_values,
    classify_value,
)
from fieldvault.services.exceptions import (
    UserNotFoundError,
    UserServiceError,
    UserValidationError,
)
from fieldvault.services.generation import list_generations, record_generation
from fieldvault.services.user import (
    BackfillResult,
    backfill_email_lookup_fields,
    derive_user_id,
    find_user_by_email,
    get_user_by_email,
    register_user,
)

__all__ = [
    # Audit
    "FieldAuditResult",
    "ValueState",
    "audit_database",
    "audit_values",
    "classify_value",
    # Errors
    "UserNotFoundError",
    "UserServiceError",
    "UserValidationError",
    # Generation
    "list_generations",
    "record_generation",
    # User
    "BackfillResult",
    "backfill_email_lookup_fields",
    "derive_user_id",
    "find_user_by_email",
    "get_user_by_email",
    "register_user",
]
