"""
Tests for fieldvault.services.user against an in-memory SQLite database.

Covers at-rest encryption of the email column, lookups across historical
storage variants, and the lookup-field backfill.
"""

import hashlib

import pytest
from sqlalchemy import String, select, text, type_coerce

from tests.conftest import OTHER_ENCRYPTION_KEY


async def _raw_email(db, user_id: int) -> str | None:
    """Read the stored email without EncryptedType processing."""
    from fieldvault.models import User

    result = await db.execute(
        select(type_coerce(User.email, String)).where(User.id == user_id)
    )
    return result.scalar_one()


async def _insert_legacy_user(db, **columns) -> int:
    """Insert a row with raw column values, as older code versions wrote them."""
    names = ", ".join(columns)
    params = ", ".join(f":{name}" for name in columns)
    await db.execute(text(f"INSERT INTO users ({names}) VALUES ({params})"), columns)
    result = await db.execute(text("SELECT max(id) FROM users"))
    return result.scalar_one()


class TestRegisterUser:
    """Tests for register_user()."""

    @pytest.mark.asyncio
    async def test_email_encrypted_at_rest(self, db_session, service):
        from fieldvault.security import is_encrypted
        from fieldvault.services import register_user

        user = await register_user(db_session, "  New.User@Example.com ")
        await db_session.commit()

        raw = await _raw_email(db_session, user.id)
        assert is_encrypted(raw)
        assert "new.user@example.com" not in raw
        assert service.decrypt(raw) == "new.user@example.com"

    @pytest.mark.asyncio
    async def test_hash_columns_populated(self, db_session, service):
        from fieldvault.services import register_user

        user = await register_user(db_session, "User@Example.com")

        assert user.email_hash == service.create_blind_index("user@example.com")
        assert user.email_hash_plain == hashlib.sha256(b"user@example.com").hexdigest()
        assert user.email_lookup is None
        assert user.user_id == f"email_{user.email_hash[:16]}"

    @pytest.mark.asyncio
    async def test_email_decrypted_on_load(self, db_session, service):
        from fieldvault.models import User
        from fieldvault.services import register_user

        user = await register_user(db_session, "load@example.com")
        await db_session.commit()
        db_session.expunge_all()

        loaded = (await db_session.execute(select(User).where(User.id == user.id))).scalar_one()

        assert loaded.email == "load@example.com"

    @pytest.mark.asyncio
    async def test_existing_user_returned(self, db_session, service):
        from fieldvault.services import register_user

        first = await register_user(db_session, "same@example.com")
        second = await register_user(db_session, "SAME@example.com  ")

        assert second.id == first.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_email", ["not-an-email", "missing@tld", "a b@c.com", ""])
    async def test_invalid_email_rejected(self, db_session, service, bad_email):
        from fieldvault.services import UserValidationError, register_user

        with pytest.raises(UserValidationError):
            await register_user(db_session, bad_email)

    @pytest.mark.asyncio
    async def test_without_key_stores_plaintext_and_plain_hash(self, db_session, no_key_env):
        from fieldvault.services import register_user

        user = await register_user(db_session, "nokey@example.com")
        await db_session.commit()

        plain = hashlib.sha256(b"nokey@example.com").hexdigest()
        assert await _raw_email(db_session, user.id) == "nokey@example.com"
        assert user.email_hash == plain
        assert user.email_hash_plain == plain


class TestFindUserByEmail:
    """Tests for find_user_by_email() across historical storage variants."""

    @pytest.mark.asyncio
    async def test_finds_current_record(self, db_session, service):
        from fieldvault.services import find_user_by_email, register_user

        user = await register_user(db_session, "current@example.com")

        found = await find_user_by_email(db_session, "  CURRENT@example.com")

        assert found is not None
        assert found.id == user.id

    @pytest.mark.asyncio
    async def test_finds_record_written_under_other_key(self, db_session, service):
        """Keyed hash mismatch, but the plain-hash tier still matches."""
        from fieldvault.security import EncryptionService
        from fieldvault.services import find_user_by_email

        old = EncryptionService(key=OTHER_ENCRYPTION_KEY)
        user_id = await _insert_legacy_user(
            db_session,
            email=old.encrypt("rotated@example.com"),
            email_hash=old.create_blind_index("rotated@example.com"),
            email_hash_plain=hashlib.sha256(b"rotated@example.com").hexdigest(),
        )

        found = await find_user_by_email(db_session, "rotated@example.com")

        assert found is not None
        assert found.id == user_id

    @pytest.mark.asyncio
    async def test_finds_record_by_legacy_lookup_field(self, db_session, service):
        from fieldvault.services import find_user_by_email

        user_id = await _insert_legacy_user(db_session, email_lookup="lookup@example.com")

        found = await find_user_by_email(db_session, "Lookup@Example.com")

        assert found is not None
        assert found.id == user_id

    @pytest.mark.asyncio
    async def test_finds_legacy_plaintext_email(self, db_session, service):
        from fieldvault.services import find_user_by_email

        user_id = await _insert_legacy_user(db_session, email="legacy@example.com")

        found = await find_user_by_email(db_session, "legacy@example.com")

        assert found is not None
        assert found.id == user_id
        assert found.email == "legacy@example.com"

    @pytest.mark.asyncio
    async def test_finds_record_written_without_key(self, db_session, service):
        """Earlier no-key writes: plain SHA-256 in email_hash, plaintext email."""
        from fieldvault.services import find_user_by_email

        user_id = await _insert_legacy_user(
            db_session,
            email="old@example.com",
            email_hash=hashlib.sha256(b"old@example.com").hexdigest(),
        )

        found = await find_user_by_email(db_session, "old@example.com")

        assert found is not None
        assert found.id == user_id

    @pytest.mark.asyncio
    async def test_unknown_email_returns_none(self, db_session, service):
        from fieldvault.services import find_user_by_email, register_user

        await register_user(db_session, "someone@example.com")

        assert await find_user_by_email(db_session, "nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_empty_email_returns_none(self, db_session, service):
        from fieldvault.services import find_user_by_email

        assert await find_user_by_email(db_session, "") is None

    @pytest.mark.asyncio
    async def test_get_user_by_email_raises(self, db_session, service):
        from fieldvault.services import UserNotFoundError, get_user_by_email

        with pytest.raises(UserNotFoundError):
            await get_user_by_email(db_session, "nobody@example.com")


class TestBackfillEmailLookupFields:
    """Tests for backfill_email_lookup_fields()."""

    @pytest.mark.asyncio
    async def test_encrypts_legacy_plaintext(self, db_session, service):
        from fieldvault.security import is_encrypted
        from fieldvault.services import backfill_email_lookup_fields

        user_id = await _insert_legacy_user(
            db_session, email="Legacy@Example.com", email_lookup="legacy@example.com"
        )

        result = await backfill_email_lookup_fields(db_session)
        await db_session.commit()

        assert result.updated == 1
        raw = await _raw_email(db_session, user_id)
        assert is_encrypted(raw)
        assert service.decrypt(raw) == "legacy@example.com"

        row = (
            await db_session.execute(
                text("SELECT email_hash, email_hash_plain, email_lookup, user_id FROM users WHERE id = :id"),
                {"id": user_id},
            )
        ).one()
        assert row[0] == service.create_blind_index("legacy@example.com")
        assert row[1] == hashlib.sha256(b"legacy@example.com").hexdigest()
        assert row[2] is None
        assert row[3] == f"email_{row[0][:16]}"

    @pytest.mark.asyncio
    async def test_current_records_unchanged(self, db_session, service):
        from fieldvault.services import backfill_email_lookup_fields, register_user

        await register_user(db_session, "current@example.com")
        await db_session.commit()
        db_session.expunge_all()

        result = await backfill_email_lookup_fields(db_session)

        assert result.unchanged == 1
        assert result.updated == 0

    @pytest.mark.asyncio
    async def test_undecryptable_records_reported(self, db_session, service):
        from fieldvault.security import EncryptionService
        from fieldvault.services import backfill_email_lookup_fields

        envelope = EncryptionService(key=OTHER_ENCRYPTION_KEY).encrypt("lost@example.com")
        user_id = await _insert_legacy_user(db_session, email=envelope)

        result = await backfill_email_lookup_fields(db_session)

        assert result.failed_ids == [user_id]
        assert await _raw_email(db_session, user_id) == envelope

    @pytest.mark.asyncio
    async def test_records_without_email_skipped(self, db_session, service):
        from fieldvault.services import backfill_email_lookup_fields

        await _insert_legacy_user(db_session, user_id="wallet_abc")

        result = await backfill_email_lookup_fields(db_session)

        assert result.skipped == 1
        assert result.updated == 0

    @pytest.mark.asyncio
    async def test_case_duplicate_reported_without_aborting(self, db_session, service):
        from fieldvault.services import backfill_email_lookup_fields

        first_id = await _insert_legacy_user(db_session, email="Alice@x.com")
        other_id = await _insert_legacy_user(db_session, email="other@x.com")
        duplicate_id = await _insert_legacy_user(db_session, email="alice@x.com")

        result = await backfill_email_lookup_fields(db_session)
        await db_session.commit()

        assert result.failed_ids == [duplicate_id]
        assert result.updated == 2

        rows = (
            await db_session.execute(text("SELECT id, email_hash FROM users ORDER BY id"))
        ).all()
        hashes = {row[0]: row[1] for row in rows}
        assert hashes[first_id] == service.create_blind_index("alice@x.com")
        assert hashes[other_id] == service.create_blind_index("other@x.com")
        assert hashes[duplicate_id] is None
        assert await _raw_email(db_session, duplicate_id) == "alice@x.com"


class TestUserReadSchema:
    """UserRead built from a loaded User carries the decrypted email."""

    @pytest.mark.asyncio
    async def test_model_validate_from_loaded_user(self, db_session, service):
        from fieldvault.schemas import UserRead
        from fieldvault.services import find_user_by_email, register_user

        created = await register_user(db_session, "Schema@Example.com")
        await db_session.commit()
        db_session.expunge_all()

        loaded = await find_user_by_email(db_session, "schema@example.com")
        read = UserRead.model_validate(loaded)

        assert read.id == created.id
        assert read.email == "schema@example.com"
        assert read.email_hash == service.create_blind_index("schema@example.com")
        assert read.user_id == created.user_id
        assert read.created_at is not None
