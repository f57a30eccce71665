"""
Multi-fallback lookup composition for encrypted, indexed fields.

Records may have been written under different encryption configurations
(key present or absent, before or after encryption was enabled). A lookup by
email therefore has to match any of the historical storage variants:

    1. email_hash        - blind index under the current key configuration
    2. email_hash_plain  - unkeyed SHA-256 of the normalized email
    3. email_lookup      - normalized plaintext lookup field (legacy)
    4. email             - raw legacy plaintext in the primary field

Dropping any tier can make users created under an older configuration
unfindable.
"""

from typing import Any

from sqlalchemy import String, or_, type_coerce
from sqlalchemy.sql.elements import ColumnElement

from fieldvault.security.encryption import (
    EncryptionService,
    create_plain_hash,
    get_encryption_service,
    normalize_value,
)

# Column names of each fallback tier, in match order
EMAIL_HASH_FIELD = "email_hash"
EMAIL_HASH_PLAIN_FIELD = "email_hash_plain"
EMAIL_LOOKUP_FIELD = "email_lookup"
EMAIL_FIELD = "email"


def create_email_hash(email: str, service: EncryptionService | None = None) -> str:
    """
    Email hash under the current key configuration.

    HMAC blind index when a key is configured, plain SHA-256 otherwise.
    """
    service = service or get_encryption_service()
    return service.create_blind_index(normalize_value(email))


def build_email_lookup_conditions(
    email: str, service: EncryptionService | None = None
) -> list[dict[str, str]]:
    """
    Build the ordered fallback conditions for finding a record by email.

    Args:
        email: Email as entered by the user (any casing/whitespace).
        service: Encryption service, defaults to the process-wide one.

    Returns:
        Single-key mappings of field name to expected stored value, ordered
        from the preferred match to the legacy match. Empty for empty input.
    """
    if not email or not email.strip():
        return []

    normalized = normalize_value(email)
    return [
        {EMAIL_HASH_FIELD: create_email_hash(normalized, service)},
        {EMAIL_HASH_PLAIN_FIELD: create_plain_hash(normalized)},
        {EMAIL_LOOKUP_FIELD: normalized},
        {EMAIL_FIELD: normalized},
    ]


def build_email_lookup_clause(
    model: Any, email: str, service: EncryptionService | None = None
) -> ColumnElement[bool] | None:
    """
    Compose the fallback conditions into a SQLAlchemy OR clause.

    Tiers whose column the model does not define are skipped. Comparisons
    are type-coerced to String so an encrypted column does not encrypt the
    bound lookup value (which would never match).

    Args:
        model: Mapped class exposing some of the fallback columns.
        email: Email to look up.
        service: Encryption service, defaults to the process-wide one.

    Returns:
        OR clause, or None when there is nothing to match on.
    """
    clauses = []
    for condition in build_email_lookup_conditions(email, service):
        for field_name, expected in condition.items():
            column = getattr(model, field_name, None)
            if column is None:
                continue
            clauses.append(type_coerce(column, String) == expected)

    if not clauses:
        return None
    return or_(*clauses)
