"""
Encryption audit report.

Checks every encrypted column and reports how many stored values are
encrypted, still plaintext, empty, or undecryptable with the current key.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fieldvault.database import create_engine_from_config, create_session_factory, session_scope
from fieldvault.logging_config import configure_logging
from fieldvault.security import is_configured
from fieldvault.services import audit_database


async def run_audit() -> int:
    """Print the audit report. Returns the number of fields needing attention."""
    print("=" * 80)
    print("🔐 Encryption Audit")
    print("=" * 80)
    print(f"   ENCRYPTION_KEY configured: {'yes' if is_configured() else 'NO'}")
    print()

    engine = create_engine_from_config()
    try:
        async with session_scope(create_session_factory(engine)) as db:
            results = await audit_database(db)
    finally:
        await engine.dispose()

    issues = 0
    for result in results:
        print(f"📊 {result.field}")
        print(f"   Total: {result.total}")
        print(f"   Encrypted: {result.encrypted}")
        print(f"   Plaintext: {result.plaintext}")
        print(f"   Undecryptable: {result.undecryptable}")
        print(f"   Empty: {result.empty}")
        print(f"   → {result.recommendation}")
        if result.plaintext_ids:
            print(f"   Plaintext ids: {result.plaintext_ids[:10]}")
        if result.undecryptable_ids:
            print(f"   Undecryptable ids: {result.undecryptable_ids[:10]}")
        print()
        if result.recommendation != "OK":
            issues += 1

    return issues


async def main():
    configure_logging()
    issues = await run_audit()
    if issues:
        print(f"❌ {issues} field(s) need attention")
        sys.exit(1)
    print("✅ All encrypted fields OK")


if __name__ == "__main__":
    asyncio.run(main())
