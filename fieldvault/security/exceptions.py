"""
Encryption-specific exceptions.

Only the write path (encrypt) raises these to callers. Read paths
(decrypt, blind index, structural checks) degrade instead of raising.
"""


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted."""
    pass


class EncryptionKeyError(EncryptionError, ValueError):
    """
    Raised when ENCRYPTION_KEY is missing or malformed.

    Examples:
        - Key not set in config or environment
        - Key is not 64 hex characters (32 bytes)
    """
    pass
