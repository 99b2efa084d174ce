import time

import aiosqlite

from imgbed.db.models import DEFAULT_CATEGORY_NAMES, Category
from imgbed.errors import NotFoundError, ValidationError


async def list_categories(db: aiosqlite.Connection) -> list[Category]:
    cursor = await db.execute("SELECT id, name, created_at FROM categories ORDER BY id ASC")
    rows = await cursor.fetchall()
    return [Category.from_row(r) for r in rows]


async def get_category(db: aiosqlite.Connection, category_id: int) -> Category | None:
    cursor = await db.execute(
        "SELECT id, name, created_at FROM categories WHERE id = ?", (category_id,)
    )
    row = await cursor.fetchone()
    return Category.from_row(row) if row else None


async def get_category_by_name(db: aiosqlite.Connection, name: str) -> Category | None:
    cursor = await db.execute(
        "SELECT id, name, created_at FROM categories WHERE name = ?", (name,)
    )
    row = await cursor.fetchone()
    return Category.from_row(row) if row else None


async def get_default_category_id(db: aiosqlite.Connection) -> int | None:
    for name in DEFAULT_CATEGORY_NAMES:
        category = await get_category_by_name(db, name)
        if category is not None:
            return category.id
    return None


async def create_category(db: aiosqlite.Connection, name: str | None) -> Category | None:
    """Create a category. Returns None when the name is already taken.

    The UNIQUE constraint decides, so duplicate deliveries of the same request
    end up with exactly one row.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name must not be empty")

    created_at = int(time.time() * 1000)
    cursor = await db.execute(
        """
        INSERT INTO categories (name, created_at)
        VALUES (?, ?)
        ON CONFLICT(name) DO NOTHING
        """,
        (name, created_at),
    )
    await db.commit()
    if cursor.rowcount == 0:
        return None
    return Category(id=cursor.lastrowid, name=name, created_at=created_at)


async def delete_category(db: aiosqlite.Connection, category_id: int) -> Category:
    """Delete a category, detaching every file and chat that pointed at it."""
    category = await get_category(db, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} does not exist")

    await db.execute("UPDATE files SET category_id = NULL WHERE category_id = ?", (category_id,))
    await db.execute("UPDATE user_settings SET category_id = NULL WHERE category_id = ?", (category_id,))
    await db.execute("DELETE FROM categories WHERE id = ?", (category_id,))
    await db.commit()
    return category
