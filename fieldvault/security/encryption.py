"""
Field-Level Encryption Module.

Protects sensitive record fields (emails, prompts) at rest while keeping
them searchable through deterministic blind indexes.

Security Features:
- AES-256-GCM authenticated encryption with a fresh random 12-byte IV per call
- Envelope format: base64(iv):base64(auth_tag):base64(ciphertext)
- HMAC-SHA256 blind indexes over normalized (lowercased, trimmed) values
- Plain SHA-256 blind index fallback when no key is configured (guessable,
  degraded mode only)

Failure Policy:
- encrypt() fails loud: missing key or cipher failure raises EncryptionError
- decrypt() fails soft: legacy plaintext, malformed input, and envelopes that
  fail authentication are returned unchanged (failures are logged)
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import secrets
from typing import Any, Iterable, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import Text, TypeDecorator
from sqlalchemy.engine import Dialect

from fieldvault.app_context import ConfigLoader
from fieldvault.security.exceptions import EncryptionError, EncryptionKeyError

logger = logging.getLogger(__name__)


KEY_LENGTH = 32
KEY_HEX_LENGTH = KEY_LENGTH * 2
IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
ENVELOPE_SEPARATOR = ":"

# Fields handled by the user record composite (encrypt_user_data)
USER_ENCRYPTED_FIELDS = ("email", "prompt")


def normalize_value(value: str) -> str:
    """Normalize a value before hashing (lowercase, trim surrounding whitespace)."""
    return value.lower().strip()


def create_plain_hash(value: str) -> str:
    """
    Unkeyed SHA-256 blind index of a normalized value.

    Deterministic but guessable: anyone can hash common emails and compare.
    Only used as a fallback and for matching records written without a key.
    """
    if not value:
        return ""
    return hashlib.sha256(normalize_value(value).encode("utf-8")).hexdigest()


def _b64decode_strict(segment: str) -> bytes | None:
    """Decode standard padded base64, returning None on malformed input."""
    try:
        return base64.b64decode(segment, validate=True)
    except (binascii.Error, ValueError):
        return None


def parse_envelope(value: Any) -> tuple[bytes, bytes, bytes] | None:
    """
    Parse a ciphertext envelope into (iv, auth_tag, ciphertext).

    Args:
        value: Any stored field value.

    Returns:
        The decoded parts, or None if the value is not a well-formed envelope.
    """
    if not value or not isinstance(value, str):
        return None

    parts = value.split(ENVELOPE_SEPARATOR)
    if len(parts) != 3:
        return None

    iv_b64, tag_b64, ciphertext_b64 = parts
    if not ciphertext_b64:
        return None

    iv = _b64decode_strict(iv_b64)
    if iv is None or len(iv) != IV_LENGTH:
        return None

    auth_tag = _b64decode_strict(tag_b64)
    if auth_tag is None or len(auth_tag) != AUTH_TAG_LENGTH:
        return None

    ciphertext = _b64decode_strict(ciphertext_b64)
    if ciphertext is None:
        return None

    return iv, auth_tag, ciphertext


def is_encrypted(value: Any) -> bool:
    """
    Check whether a stored value is a ciphertext envelope.

    Strict structural test: exactly three segments, a 12-byte IV, a 16-byte
    auth tag and a non-empty base64 ciphertext. Used to avoid double
    encryption and to tell envelopes from legacy plaintext.
    """
    return parse_envelope(value) is not None


def generate_encryption_key() -> str:
    """
    Generate a fresh key for initial setup.

    Returns:
        64 lowercase hex characters (32 random bytes), suitable for ENCRYPTION_KEY.
    """
    return secrets.token_hex(KEY_LENGTH)


def _load_configured_key() -> str:
    """Read ENCRYPTION_KEY through the configuration loader."""
    config_loader = ConfigLoader()
    config_loader.load()
    return config_loader.get("security.encryption_key", "")


class EncryptionService:
    """
    Core encryption service using AES-256-GCM.

    Holds the process-wide key (immutable once constructed). The key is
    validated on every access rather than at construction, so a service
    without a usable key still serves the read path (decrypt passes values
    through, blind indexes fall back to plain SHA-256).
    """

    def __init__(self, key: str | bytes | None = None) -> None:
        """
        Initialize encryption service.

        Args:
            key: 64-hex-char string or 32 raw bytes. If None, loads
                 ENCRYPTION_KEY from config. An empty value means no key.
        """
        if key is None:
            key = _load_configured_key()
        self._raw_key = key

    def get_key(self) -> bytes:
        """
        Return the validated 32-byte key.

        Raises:
            EncryptionKeyError: If no key is set or it has the wrong length/format.
        """
        raw = self._raw_key
        if not raw:
            raise EncryptionKeyError(
                "ENCRYPTION_KEY is required for data encryption. "
                "Generate one with scripts/generate_key.py"
            )

        if isinstance(raw, bytes):
            key = raw
        else:
            if len(raw) != KEY_HEX_LENGTH:
                raise EncryptionKeyError(
                    f"ENCRYPTION_KEY must be exactly {KEY_HEX_LENGTH} hex characters "
                    f"(256 bits), got {len(raw)}"
                )
            try:
                key = bytes.fromhex(raw)
            except ValueError:
                raise EncryptionKeyError("ENCRYPTION_KEY must be hexadecimal") from None

        if len(key) != KEY_LENGTH:
            raise EncryptionKeyError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes (256 bits)"
            )
        return key

    @property
    def is_configured(self) -> bool:
        """Whether a usable key is available. Never raises."""
        try:
            self.get_key()
        except EncryptionKeyError:
            return False
        return True

    def encrypt(self, plaintext: str | None) -> str | None:
        """
        Encrypt plaintext into a ciphertext envelope.

        Args:
            plaintext: Text to encrypt. Empty or None is returned unchanged.

        Returns:
            Envelope string: base64(iv):base64(auth_tag):base64(ciphertext).

        Raises:
            EncryptionError: If no key is configured or the cipher fails.
        """
        if not plaintext:
            return plaintext

        try:
            cipher = AESGCM(self.get_key())
            iv = os.urandom(IV_LENGTH)
            # AESGCM appends the 16-byte tag to the ciphertext
            sealed = cipher.encrypt(iv, plaintext.encode("utf-8"), None)
        except Exception as e:
            logger.error(f"Encryption failed: {e}")
            raise EncryptionError("Encryption failed") from None

        ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        return ENVELOPE_SEPARATOR.join(
            base64.b64encode(part).decode("ascii")
            for part in (iv, auth_tag, ciphertext)
        )

    def decrypt(self, value: str | None) -> str | None:
        """
        Decrypt a ciphertext envelope.

        Values that are not envelopes (legacy plaintext, malformed data) are
        returned as-is. Envelopes that fail authentication (wrong key,
        tampered ciphertext or tag) are logged and also returned as-is, so
        callers may see an encrypted-looking string instead of plaintext.

        Args:
            value: Stored field value.

        Returns:
            Decrypted plaintext, or the original value.
        """
        if not value:
            return value

        parsed = parse_envelope(value)
        if parsed is None:
            return value

        iv, auth_tag, ciphertext = parsed
        try:
            cipher = AESGCM(self.get_key())
            plaintext = cipher.decrypt(iv, ciphertext + auth_tag, None)
            return plaintext.decode("utf-8")
        except EncryptionKeyError as e:
            logger.warning(f"Decryption skipped, key not configured: {e}")
        except InvalidTag:
            logger.error("Decryption failed: authentication tag mismatch")
        except (UnicodeDecodeError, ValueError) as e:
            logger.error(f"Decryption failed: {e}")

        return value

    def create_blind_index(self, value: str | None) -> str:
        """
        Generate a deterministic hash for equality lookups on encrypted fields.

        Uses HMAC-SHA256 with the encryption key when configured. Without a
        key, falls back to plain SHA-256 (degraded: guessable by dictionary).

        Args:
            value: Value to index. Normalized before hashing.

        Returns:
            64-char hex digest, or "" for empty input.
        """
        if not value:
            return ""

        normalized = normalize_value(value)
        try:
            key = self.get_key()
        except EncryptionKeyError:
            return create_plain_hash(normalized)

        return hmac.new(key, normalized.encode("utf-8"), hashlib.sha256).hexdigest()

    def encrypt_fields(
        self, obj: Mapping[str, Any], field_names: Iterable[str]
    ) -> dict[str, Any]:
        """Return a shallow copy with the listed non-empty string fields encrypted."""
        result = dict(obj)
        for name in field_names:
            value = result.get(name)
            if isinstance(value, str) and value:
                result[name] = self.encrypt(value)
        return result

    def decrypt_fields(
        self, obj: Mapping[str, Any], field_names: Iterable[str]
    ) -> dict[str, Any]:
        """Return a shallow copy with the listed non-empty string fields decrypted."""
        result = dict(obj)
        for name in field_names:
            value = result.get(name)
            if isinstance(value, str) and value:
                result[name] = self.decrypt(value)
        return result

    def encrypt_user_data(self, user_data: Mapping[str, Any]) -> dict[str, Any]:
        """
        Prepare a user-shaped record for storage.

        The email is normalized, indexed into `email_hash`, then encrypted.
        The normalized form is what gets encrypted, so decrypt_user_data()
        returns the lowercased, trimmed email rather than the caller's casing.
        An email that is already an envelope is left alone (no new hash).
        Records without an email get no `email_hash`.

        Args:
            user_data: Record fields.

        Returns:
            New dict ready to persist.
        """
        result = dict(user_data)

        email = result.get("email")
        if isinstance(email, str) and email and not is_encrypted(email):
            normalized = normalize_value(email)
            result["email_hash"] = self.create_blind_index(normalized)
            result["email"] = self.encrypt(normalized)

        prompt = result.get("prompt")
        if isinstance(prompt, str) and prompt and not is_encrypted(prompt):
            result["prompt"] = self.encrypt(prompt)

        return result

    def decrypt_user_data(self, user_data: Mapping[str, Any]) -> dict[str, Any]:
        """Decrypt the sensitive fields of a stored user-shaped record."""
        return self.decrypt_fields(user_data, USER_ENCRYPTED_FIELDS)


# Global singleton (key is immutable for the process lifetime)
_encryption_service: EncryptionService | None = None


def get_encryption_service() -> EncryptionService:
    """Get or create the global encryption service instance."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service


def reset_encryption_service() -> None:
    """Drop the global instance so the next access reloads the key."""
    global _encryption_service
    _encryption_service = None


def is_configured() -> bool:
    """Whether the process-wide service has a usable key."""
    return get_encryption_service().is_configured


def encrypt(plaintext: str | None) -> str | None:
    """Encrypt with the process-wide service."""
    return get_encryption_service().encrypt(plaintext)


def decrypt(value: str | None) -> str | None:
    """Decrypt with the process-wide service."""
    return get_encryption_service().decrypt(value)


def create_blind_index(value: str | None) -> str:
    """
    Helper function to generate blind index for a value.

    Used when you need to populate the hash column for lookups.
    """
    return get_encryption_service().create_blind_index(value)


def encrypt_fields(obj: Mapping[str, Any], field_names: Iterable[str]) -> dict[str, Any]:
    return get_encryption_service().encrypt_fields(obj, field_names)


def decrypt_fields(obj: Mapping[str, Any], field_names: Iterable[str]) -> dict[str, Any]:
    return get_encryption_service().decrypt_fields(obj, field_names)


def encrypt_user_data(user_data: Mapping[str, Any]) -> dict[str, Any]:
    return get_encryption_service().encrypt_user_data(user_data)


def decrypt_user_data(user_data: Mapping[str, Any]) -> dict[str, Any]:
    return get_encryption_service().decrypt_user_data(user_data)


class EncryptedType(TypeDecorator):
    """
    SQLAlchemy TypeDecorator for transparent field encryption.

    Encrypts on write and decrypts on read. Values that are already
    envelopes are stored unchanged, so re-saving a loaded-but-undecryptable
    value never double-encrypts. Legacy plaintext rows read back unchanged.

    Without a configured key, values are stored as plaintext and a warning
    is logged.

    Usage:
        class Generation(Base):
            prompt: Mapped[str] = mapped_column(EncryptedType())
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: str | None, dialect: Dialect) -> str | None:
        """Encrypt value before storing in database."""
        if not value or is_encrypted(value):
            return value

        service = get_encryption_service()
        if not service.is_configured:
            logger.warning("Field stored without encryption - ENCRYPTION_KEY not configured")
            return value

        return service.encrypt(value)

    def process_result_value(self, value: str | None, dialect: Dialect) -> str | None:
        """Decrypt value when reading from database."""
        if value is None:
            return None

        return get_encryption_service().decrypt(value)
