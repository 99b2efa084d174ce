"""Upload, rename and delete flows shared by the web surface and the bot."""

import logging

import aiosqlite

from imgbed.db.models import FileRecord
from imgbed.db.repositories import files as files_repo
from imgbed.db.repositories.category import get_category, get_default_category_id
from imgbed.db.repositories.user_settings import get_or_create_setting
from imgbed.errors import NotFoundError, PayloadTooLargeError, ValidationError
from imgbed.storage.naming import extension_for, file_extension, normalize_suffix

logger = logging.getLogger(__name__)


async def upload_file(
    db: aiosqlite.Connection,
    ctx,
    *,
    data: bytes,
    file_name: str | None,
    mime_type: str,
    chat_id: str,
    category_id: int | None = None,
) -> FileRecord:
    settings = ctx.settings
    if not data:
        raise ValidationError("File is empty")
    if len(data) > settings.max_size_bytes:
        raise PayloadTooLargeError(f"File exceeds the {settings.max_size_mb}MB limit")

    setting = await get_or_create_setting(db, chat_id, settings.default_storage)
    if category_id is None:
        category_id = setting.category_id or await get_default_category_id(db)
    elif await get_category(db, category_id) is None:
        raise ValidationError(f"Category {category_id} does not exist")

    stored = await ctx.router.store(db, data, file_name, mime_type, chat_id)
    record = await files_repo.add_file(
        db,
        url=stored.url,
        blob_ref=stored.blob_ref,
        storage_type=stored.storage_type,
        relay_message_id=stored.relay_message_id,
        file_name=file_name or stored.key,
        file_size=len(data),
        mime_type=mime_type,
        uploader_chat_id=str(chat_id),
        category_id=category_id,
        custom_suffix=stored.custom_suffix,
    )
    logger.info("Recorded %s (%d bytes) as file #%d", record.url, len(data), record.id)
    return record


async def rename_with_suffix(db: aiosqlite.Connection, ctx, url: str, suffix: str | None) -> tuple[FileRecord, FileRecord]:
    """Give a file a new locator ``{suffix}.{ext}``. Returns (old, new) records."""
    suffix = normalize_suffix(suffix)
    if not url or suffix is None:
        raise ValidationError("url and suffix are required")

    record = await files_repo.find_by_url(db, url) or await files_repo.find_by_blob_ref(db, url)
    if record is None:
        raise NotFoundError("File not found")

    ext = file_extension(record.url) or extension_for(record.file_name, record.mime_type)
    new_key = f"{suffix}.{ext}"
    new_url = ctx.settings.public_url(new_key)

    backend = ctx.backend(record.storage_type)
    if backend is None:
        raise ValidationError(f"The {record.storage_type.value} backend is not configured")
    new_ref = await backend.rename(record.blob_ref, new_key, record.mime_type)

    updated = await files_repo.rename_file(
        db,
        record.id,
        url=new_url,
        blob_ref=new_ref,
        file_name=new_key,
        custom_suffix=suffix,
    )
    logger.info("Renamed %s -> %s", record.url, new_url)
    return record, updated


async def delete_file(db: aiosqlite.Connection, ctx, record: FileRecord) -> None:
    backend = ctx.backend(record.storage_type)
    if backend is None:
        logger.warning("No %s backend configured, dropping metadata for %s only", record.storage_type.value, record.url)
    else:
        await backend.delete(record.blob_ref, record.relay_message_id)
    await files_repo.delete_file_record(db, record.id)
    logger.info("Deleted %s", record.url)
