"""
Generate a new ENCRYPTION_KEY.

Run once during setup and store the value securely (e.g. in .env):

    ENCRYPTION_KEY=<64 hex characters>

The key is not written anywhere by this script.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fieldvault.security import generate_encryption_key


def main() -> None:
    key = generate_encryption_key()
    print("🔑 New encryption key (32 bytes, hex):")
    print()
    print(f"ENCRYPTION_KEY={key}")
    print()
    print("⚠️  Store this securely. Data encrypted with a lost key cannot be recovered.")


if __name__ == "__main__":
    main()
