"""
Core security utilities.

Provides field-level encryption, blind indexes and encrypted-field lookups.
"""

from fieldvault.security.encryption import (
    EncryptedType,
    EncryptionService,
    create_blind_index,
    create_plain_hash,
    decrypt,
    decrypt_fields,
    decrypt_user_data,
    encrypt,
    encrypt_fields,
    encrypt_user_data,
    generate_encryption_key,
    get_encryption_service,
    is_configured,
    is_encrypted,
    normalize_value,
    reset_encryption_service,
)
from fieldvault.security.exceptions import EncryptionError, EncryptionKeyError
from fieldvault.security.lookup import (
    build_email_lookup_clause,
    build_email_lookup_conditions,
    create_email_hash,
)

__all__ = [
    # Encryption
    "EncryptedType",
    "EncryptionService",
    "create_blind_index",
    "create_plain_hash",
    "decrypt",
    "decrypt_fields",
    "decrypt_user_data",
    "encrypt",
    "encrypt_fields",
    "encrypt_user_data",
    "generate_encryption_key",
    "get_encryption_service",
    "is_configured",
    "is_encrypted",
    "normalize_value",
    "reset_encryption_service",
    # Errors
    "EncryptionError",
    "EncryptionKeyError",
    # Lookup
    "build_email_lookup_clause",
    "build_email_lookup_conditions",
    "create_email_hash",
]
