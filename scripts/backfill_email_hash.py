"""
Backfill email blind indexes and encrypt legacy plaintext emails.

Populates email_hash / email_hash_plain for every user under the current
ENCRYPTION_KEY configuration, encrypts emails still stored as plaintext,
and clears the legacy email_lookup field once the email is encrypted.

Uses standard ORM operations - EncryptedType handles decryption automatically.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fieldvault.database import create_engine_from_config, create_session_factory, session_scope
from fieldvault.logging_config import configure_logging
from fieldvault.security import is_configured
from fieldvault.services import backfill_email_lookup_fields


async def backfill_email_hashes():
    """Backfill lookup fields for all existing users."""
    if not is_configured():
        print("⚠ ENCRYPTION_KEY not configured - hashes will use plain SHA-256 and emails stay plaintext")

    engine = create_engine_from_config()
    try:
        async with session_scope(create_session_factory(engine)) as db:
            result = await backfill_email_lookup_fields(db)
    finally:
        await engine.dispose()

    print(f"\n✅ Backfill complete:")
    print(f"   - Updated: {result.updated}")
    print(f"   - Unchanged: {result.unchanged}")
    print(f"   - Skipped (no email): {result.skipped}")
    print(f"   - Failed (undecryptable): {result.failed}")
    for user_id in result.failed_ids:
        print(f"  ⚠ User {user_id} email could not be decrypted")


async def main():
    configure_logging()
    try:
        await backfill_email_hashes()
    except Exception as e:
        print(f"❌ Error: {e}")
        import traceback
        traceback.print_exc()
        raise


if __name__ == "__main__":
    asyncio.run(main())
