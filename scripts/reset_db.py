#!/usr/bin/env python3
"""Reset the relay database with all tables."""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from relay import db
from relay.models import Base

async def init():
    async with db.engine.begin() as conn:
        print("Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)
        print("Creating all tables...")
        await conn.run_sync(Base.metadata.create_all)
    await db.engine.dispose()
    print("Database reset complete!")

if __name__ == '__main__':
    asyncio.run(init())
