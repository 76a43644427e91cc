"""Initialize the database schema read by the portal backend.

Creates the tables the handlers read. Run this before starting the API
server against an empty database. Pass --reset to drop existing tables first.
"""

import argparse
import asyncio
import sys

from portal.db import engine
from portal.models import Base
from portal.config import settings


async def init_database(reset: bool = False):
    """Create all database tables."""
    print(f"Initializing database: {settings.db.url.split('@')[-1]}")

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
            print("✓ Dropped existing tables")

        await conn.run_sync(Base.metadata.create_all)
        print("✓ Created all tables")

    await engine.dispose()

    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(Base.metadata.tables.keys())}")


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="Drop existing tables before creating them")
    args = parser.parse_args()

    try:
        await init_database(reset=args.reset)
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
