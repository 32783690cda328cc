#!/usr/bin/env python
"""Check database connectivity and the sales schema.

Usage:
    python scripts/check_db.py
"""

import asyncio
import sys

from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import dispose_engine, get_engine

REQUIRED_TABLES = ("app_user", "sales_group", "user_group", "sale")


async def check_database() -> int:
    """Verify the connection, the statement timeout and the required tables."""
    settings = get_settings()

    print("SalesAnalytics - Database Check")
    print("=" * 31)
    print(f"Database URL: {settings.database_url.split('@')[-1]}")  # Hide credentials
    print()

    try:
        async with get_engine().connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1
            print("[OK] Basic connectivity")

            result = await conn.execute(text("SHOW statement_timeout"))
            print(f"[OK] statement_timeout = {result.scalar()}")

            result = await conn.execute(
                text("SELECT tablename FROM pg_tables WHERE schemaname = current_schema()")
            )
            present = {row[0] for row in result}
            missing = [table for table in REQUIRED_TABLES if table not in present]
            if missing:
                print(f"[WARN] Missing tables: {', '.join(missing)}")
                print("       Run: alembic upgrade head")
            else:
                print(f"[OK] Tables present: {', '.join(REQUIRED_TABLES)}")

        print()
        print("Database check completed.")
        return 0

    except Exception as e:
        print(f"[FAIL] Connection failed: {e}")
        print()
        print("Troubleshooting:")
        print("  1. Check DATABASE_URL in .env file")
        print("  2. Verify PostgreSQL is reachable")
        return 1

    finally:
        await dispose_engine()


def main() -> None:
    sys.exit(asyncio.run(check_database()))


if __name__ == "__main__":
    main()
