import os

import aiosqlite

from imgbed.db.schema import SchemaManager


async def get_db(db_path: str) -> aiosqlite.Connection:
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA busy_timeout=5000")
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    return db


async def init_db(db_path: str) -> None:
    db = await get_db(db_path)
    try:
        await SchemaManager(db).ensure_schema()
    finally:
        await db.close()
