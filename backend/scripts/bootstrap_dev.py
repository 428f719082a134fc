"""
Dev bootstrap script — create a developer, an API key and a sample code
for local development.

Usage:
    python -m scripts.bootstrap_dev

This will:
  1. Create a new developer named "Dev Developer"
  2. Generate an API key with every scope (redeem, cmal, usage)
  3. Issue a 100-point loyalty code limited to 10 scans
  4. Print the raw key ONCE (it is never stored)

The raw key is shown exactly once — copy it immediately.
"""

import asyncio
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from loyalty_ledger.auth.hashing import display_prefix, generate_api_key
from loyalty_ledger.core.database import async_session_factory, engine
from loyalty_ledger.models.api_key import APIKey, SCOPE_CMAL, SCOPE_REDEEM, SCOPE_USAGE
from loyalty_ledger.models.code import Code, CodeType
from loyalty_ledger.models.developer import Developer


async def main() -> None:
    developer_name = "Dev Developer"

    async with async_session_factory() as session:
        # ── Create developer ────────────────────────────────
        developer = Developer(name=developer_name)
        session.add(developer)
        await session.flush()  # get developer.id

        # ── Generate API key ────────────────────────────────
        raw_key, key_hash = generate_api_key()

        api_key = APIKey(
            developer_id=developer.id,
            key_hash=key_hash,
            prefix=display_prefix(raw_key),
            scopes=[SCOPE_REDEEM, SCOPE_CMAL, SCOPE_USAGE],
        )
        session.add(api_key)

        # ── Issue a sample code ─────────────────────────────
        code = Code(
            issuer_id="dev-coffee-shop",
            code_type=CodeType.LOYALTY.value,
            points_value=100,
            scan_limit=10,
        )
        session.add(code)
        await session.commit()

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Developer:    {developer.name}")
    print(f"  Developer ID: {developer.id}")
    print(f"  Sample code:  {code.id}  (100 points, 10 scans)")
    print()
    print(f"  API Key:      {raw_key}")
    print()
    print("  ⚠  Copy this key now — it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
