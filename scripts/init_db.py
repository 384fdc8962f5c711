#!/usr/bin/env python3
"""Create the predictions table in DATABASE_URL."""

import asyncio

from tradeflow.app.storage.database import init_database


async def main():
    print("Initializing database...")
    db = await init_database()
    print("Database initialized successfully!")
    print("Tables created: predictions")
    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
