"""
User Persistence Service.

Writes users with an encrypted email plus blind indexes, and finds them
again through the multi-fallback lookup so that records created under any
historical encryption configuration stay reachable.

Write Strategy:
    - Email is validated and normalized before anything is hashed
    - email_hash uses the current key configuration (HMAC, or SHA-256 without a key)
    - email_hash_plain is always the unkeyed SHA-256
    - EncryptedType encrypts the email column on flush
"""

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy import String, select, type_coerce
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from fieldvault.models import User
from fieldvault.schemas import UserCreate
from fieldvault.security import (
    EncryptionService,
    build_email_lookup_clause,
    create_plain_hash,
    get_encryption_service,
    is_encrypted,
    normalize_value,
)
from fieldvault.services.exceptions import UserNotFoundError, UserValidationError

logger = logging.getLogger(__name__)

USER_ID_PREFIX = "email_"


def derive_user_id(email_hash: str) -> str:
    """Public user identifier derived from the email blind index."""
    return f"{USER_ID_PREFIX}{email_hash[:16]}"


async def find_user_by_email(db: AsyncSession, email: str) -> User | None:
    """
    Find a user by email across all historical storage variants.

    Matches keyed hash, plain hash, legacy lookup field, or legacy
    plaintext email (see fieldvault.security.lookup).

    Args:
        db: Database session.
        email: Email in any casing/whitespace.

    Returns:
        Matching user, or None.
    """
    clause = build_email_lookup_clause(User, email)
    if clause is None:
        return None

    result = await db.execute(select(User).where(clause).order_by(User.id).limit(1))
    return result.scalars().first()


async def get_user_by_email(db: AsyncSession, email: str) -> User:
    """
    Like find_user_by_email, but raises when nothing matches.

    Raises:
        UserNotFoundError: If no fallback tier matches.
    """
    user = await find_user_by_email(db, email)
    if user is None:
        raise UserNotFoundError("User not found for the given email")
    return user


async def register_user(db: AsyncSession, email: str) -> User:
    """
    Get or create a user by email.

    Args:
        db: Database session (caller commits).
        email: Raw email input.

    Returns:
        The existing user if any lookup tier matches, otherwise a new one.

    Raises:
        UserValidationError: If the email is malformed.
    """
    try:
        payload = UserCreate(email=email)
    except ValidationError as e:
        raise UserValidationError("Please enter a valid email address") from e

    existing = await find_user_by_email(db, payload.email)
    if existing is not None:
        return existing

    service = get_encryption_service()
    email_hash = service.create_blind_index(payload.email)
    if not service.is_configured:
        logger.warning("Email stored without encryption - ENCRYPTION_KEY not configured")

    user = User(
        user_id=derive_user_id(email_hash),
        email=payload.email,
        email_hash=email_hash,
        email_hash_plain=create_plain_hash(payload.email),
    )
    db.add(user)
    await db.flush()

    logger.info(f"Created user {user.user_id} (hash {email_hash[:8]}...)")
    return user


@dataclass
class BackfillResult:
    """Outcome of a lookup-field backfill pass."""

    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed_ids: list[int] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)


async def backfill_email_lookup_fields(db: AsyncSession) -> BackfillResult:
    """
    Bring every user's email storage up to the current configuration.

    For each user:
        - legacy plaintext emails are encrypted (when a key is configured)
        - email_hash and email_hash_plain are recomputed
        - email_lookup plaintext is cleared once the email is encrypted
        - user_id is derived if missing

    Each user is written inside its own SAVEPOINT. Records whose email cannot
    be decrypted, or whose new hash collides with another user (emails that
    differ only by case), are left untouched and reported in failed_ids.

    Args:
        db: Database session (caller commits).

    Returns:
        BackfillResult with per-outcome counts.
    """
    service = get_encryption_service()
    result = BackfillResult()

    raw_rows = await db.execute(select(User.id, type_coerce(User.email, String)))
    raw_emails = {row[0]: row[1] for row in raw_rows.all()}

    users = (await db.execute(select(User).order_by(User.id))).scalars().all()
    for user in users:
        record_id = user.id
        email = user.email
        if not email:
            result.skipped += 1
            continue

        if is_encrypted(email):
            # decrypt() returned the envelope unchanged: wrong key or tampered
            logger.error(f"User {record_id} email could not be decrypted, skipping")
            result.failed_ids.append(record_id)
            continue

        try:
            async with db.begin_nested():
                changed = _apply_current_storage(user, email, raw_emails.get(record_id), service)
        except IntegrityError:
            logger.error(f"User {record_id} conflicts with an existing email hash, skipping")
            result.failed_ids.append(record_id)
            continue

        if changed:
            result.updated += 1
        else:
            result.unchanged += 1

    logger.info(
        f"Backfill complete: updated={result.updated} unchanged={result.unchanged} "
        f"skipped={result.skipped} failed={result.failed}"
    )
    return result


def _apply_current_storage(
    user: User, email: str, raw_email: str | None, service: EncryptionService
) -> bool:
    """Update one user's email columns in place. Returns True if anything changed."""
    encryption_enabled = service.is_configured
    normalized = normalize_value(email)
    email_hash = service.create_blind_index(normalized)
    email_hash_plain = create_plain_hash(normalized)
    changed = False

    if encryption_enabled and (not is_encrypted(raw_email) or email != normalized):
        user.email = normalized
        flag_modified(user, "email")
        changed = True

    if user.email_hash != email_hash:
        user.email_hash = email_hash
        changed = True
    if user.email_hash_plain != email_hash_plain:
        user.email_hash_plain = email_hash_plain
        changed = True
    if encryption_enabled and user.email_lookup is not None:
        user.email_lookup = None
        changed = True
    if not user.user_id:
        user.user_id = derive_user_id(email_hash)
        changed = True

    return changed
