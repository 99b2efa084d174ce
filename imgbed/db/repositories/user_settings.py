import time

import aiosqlite

from imgbed.db.models import StorageType, UserSetting, WaitingFor

_UPDATABLE = frozenset({"storage_type", "category_id", "custom_suffix", "waiting_for"})


async def get_setting(db: aiosqlite.Connection, chat_id: str) -> UserSetting | None:
    cursor = await db.execute(
        "SELECT * FROM user_settings WHERE chat_id = ?", (str(chat_id),)
    )
    row = await cursor.fetchone()
    return UserSetting.from_row(row) if row else None


async def get_or_create_setting(
    db: aiosqlite.Connection,
    chat_id: str,
    default_storage: StorageType,
) -> UserSetting:
    await db.execute(
        """
        INSERT INTO user_settings (chat_id, storage_type, created_at)
        VALUES (?, ?, ?)
        ON CONFLICT(chat_id) DO NOTHING
        """,
        (str(chat_id), default_storage.value, int(time.time() * 1000)),
    )
    await db.commit()
    return await get_setting(db, chat_id)


async def update_setting(db: aiosqlite.Connection, chat_id: str, **changes) -> UserSetting:
    """Persist the given fields for a chat. Last write wins."""
    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise TypeError(f"cannot update user_settings fields: {sorted(unknown)}")

    values = {}
    for field, value in changes.items():
        if isinstance(value, WaitingFor):
            value = value.db_value
        elif isinstance(value, StorageType):
            value = value.value
        values[field] = value

    if values:
        assignments = ", ".join(f"{field} = ?" for field in values)
        await db.execute(
            f"UPDATE user_settings SET {assignments} WHERE chat_id = ?",
            (*values.values(), str(chat_id)),
        )
        await db.commit()
    return await get_setting(db, chat_id)
