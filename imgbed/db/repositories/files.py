import time

import aiosqlite

from imgbed.db.models import FileRecord, StorageType

_SELECT = """
    SELECT f.*, c.name AS category_name
    FROM files f
    LEFT JOIN categories c ON f.category_id = c.id
"""


async def _first(db: aiosqlite.Connection, where: str, params: tuple) -> FileRecord | None:
    # url is not unique; the newest row wins, matching "later upload overwrites earlier".
    cursor = await db.execute(f"{_SELECT} WHERE {where} ORDER BY f.id DESC LIMIT 1", params)
    row = await cursor.fetchone()
    return FileRecord.from_row(row) if row else None


async def add_file(
    db: aiosqlite.Connection,
    *,
    url: str,
    blob_ref: str,
    storage_type: StorageType,
    relay_message_id: int,
    file_name: str | None,
    file_size: int | None,
    mime_type: str | None,
    uploader_chat_id: str | None,
    category_id: int | None,
    custom_suffix: str | None,
) -> FileRecord:
    cursor = await db.execute(
        """
        INSERT INTO files (
            url, blob_ref, relay_message_id, created_at, file_name, file_size,
            mime_type, uploader_chat_id, storage_type, category_id, custom_suffix
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            url,
            blob_ref,
            relay_message_id,
            int(time.time() * 1000),
            file_name,
            file_size,
            mime_type,
            uploader_chat_id,
            storage_type.value,
            category_id,
            custom_suffix,
        ),
    )
    await db.commit()
    return await get_file(db, cursor.lastrowid)


async def get_file(db: aiosqlite.Connection, file_id: int) -> FileRecord | None:
    return await _first(db, "f.id = ?", (file_id,))


async def find_by_url(db: aiosqlite.Connection, url: str) -> FileRecord | None:
    return await _first(db, "f.url = ?", (url,))


async def find_by_blob_ref(db: aiosqlite.Connection, blob_ref: str) -> FileRecord | None:
    return await _first(db, "f.blob_ref = ?", (blob_ref,))


async def find_by_file_name(db: aiosqlite.Connection, file_name: str) -> FileRecord | None:
    return await _first(db, "f.file_name = ?", (file_name,))


async def list_files(
    db: aiosqlite.Connection,
    category_id: int | None = None,
) -> list[FileRecord]:
    if category_id is None:
        cursor = await db.execute(f"{_SELECT} ORDER BY f.created_at DESC, f.id DESC")
    else:
        cursor = await db.execute(
            f"{_SELECT} WHERE f.category_id = ? ORDER BY f.created_at DESC, f.id DESC",
            (category_id,),
        )
    rows = await cursor.fetchall()
    return [FileRecord.from_row(r) for r in rows]


async def search_files(db: aiosqlite.Connection, query: str) -> list[FileRecord]:
    escaped = query.replace("!", "!!").replace("%", "!%").replace("_", "!_")
    cursor = await db.execute(
        f"""
        {_SELECT}
        WHERE f.file_name LIKE ? ESCAPE '!' COLLATE NOCASE
        ORDER BY f.created_at DESC, f.id DESC
        """,
        (f"%{escaped}%",),
    )
    rows = await cursor.fetchall()
    return [FileRecord.from_row(r) for r in rows]


async def delete_file_record(db: aiosqlite.Connection, file_id: int) -> None:
    await db.execute("DELETE FROM files WHERE id = ?", (file_id,))
    await db.commit()


async def rename_file(
    db: aiosqlite.Connection,
    file_id: int,
    *,
    url: str,
    blob_ref: str,
    file_name: str,
    custom_suffix: str,
) -> FileRecord:
    await db.execute(
        """
        UPDATE files SET url = ?, blob_ref = ?, file_name = ?, custom_suffix = ?
        WHERE id = ?
        """,
        (url, blob_ref, file_name, custom_suffix, file_id),
    )
    await db.commit()
    return await get_file(db, file_id)


async def chat_stats(db: aiosqlite.Connection, chat_id: str) -> dict:
    cursor = await db.execute(
        """
        SELECT COUNT(*) AS total_files,
               COALESCE(SUM(file_size), 0) AS total_size,
               COUNT(DISTINCT category_id) AS total_categories
        FROM files WHERE uploader_chat_id = ?
        """,
        (str(chat_id),),
    )
    row = await cursor.fetchone()
    return dict(row)
