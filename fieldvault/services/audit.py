"""
Encryption Audit Service.

Reports how the stored values of sensitive fields are protected. Values are
read raw (bypassing EncryptedType) and classified as:

    EMPTY          no value
    ENCRYPTED      envelope that decrypts with the current key
    UNDECRYPTABLE  envelope that does not decrypt (wrong key or tampered)
    PLAINTEXT      legacy value never encrypted

UNDECRYPTABLE values are a data-integrity event: reads return them in
encrypted-looking form rather than hiding them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import String, select, type_coerce
from sqlalchemy.ext.asyncio import AsyncSession

from fieldvault.models import Generation, User
from fieldvault.security import EncryptionService, get_encryption_service, is_encrypted

logger = logging.getLogger(__name__)


class ValueState(str, Enum):
    """Protection state of one stored value."""

    EMPTY = "empty"
    ENCRYPTED = "encrypted"
    UNDECRYPTABLE = "undecryptable"
    PLAINTEXT = "plaintext"


def classify_value(value: str | None, service: EncryptionService | None = None) -> ValueState:
    """Classify a raw stored value."""
    if not value:
        return ValueState.EMPTY
    if not is_encrypted(value):
        return ValueState.PLAINTEXT

    service = service or get_encryption_service()
    if service.decrypt(value) == value:
        return ValueState.UNDECRYPTABLE
    return ValueState.ENCRYPTED


@dataclass
class FieldAuditResult:
    """Audit counts for one field."""

    field: str
    total: int = 0
    encrypted: int = 0
    plaintext: int = 0
    undecryptable: int = 0
    empty: int = 0
    plaintext_ids: list[Any] = field(default_factory=list)
    undecryptable_ids: list[Any] = field(default_factory=list)

    @property
    def recommendation(self) -> str:
        if self.undecryptable:
            return "Integrity issue: some values cannot be decrypted with the current key"
        if self.plaintext:
            return "Run scripts/backfill_email_hash.py or re-save records to encrypt plaintext values"
        return "OK"


def audit_values(
    field_name: str,
    items: Iterable[tuple[Any, str | None]],
    service: EncryptionService | None = None,
) -> FieldAuditResult:
    """
    Audit raw values of one field.

    Args:
        field_name: Label for the report (e.g. "users.email").
        items: (record_id, raw_value) pairs.
        service: Encryption service, defaults to the process-wide one.

    Returns:
        FieldAuditResult with counts and offending record ids.
    """
    service = service or get_encryption_service()
    result = FieldAuditResult(field=field_name)

    for record_id, value in items:
        result.total += 1
        state = classify_value(value, service)
        if state is ValueState.EMPTY:
            result.empty += 1
        elif state is ValueState.PLAINTEXT:
            result.plaintext += 1
            result.plaintext_ids.append(record_id)
        elif state is ValueState.UNDECRYPTABLE:
            result.undecryptable += 1
            result.undecryptable_ids.append(record_id)
        else:
            result.encrypted += 1

    if result.undecryptable:
        logger.error(
            f"{field_name}: {result.undecryptable} value(s) cannot be decrypted"
        )
    return result


async def audit_database(db: AsyncSession) -> list[FieldAuditResult]:
    """Audit every encrypted column of the reference models."""
    targets = [
        ("users.email", User.id, User.email),
        ("generations.prompt", Generation.id, Generation.prompt),
    ]

    results = []
    for label, id_column, value_column in targets:
        rows = await db.execute(select(id_column, type_coerce(value_column, String)))
        results.append(audit_values(label, rows.all()))
    return results
