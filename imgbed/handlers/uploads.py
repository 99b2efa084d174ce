import logging
from datetime import datetime

import aiosqlite
from aiogram import Bot, F, Router
from aiogram.types import Message

from imgbed.db.models import UserSetting
from imgbed.errors import ImgbedError
from imgbed.services.files import upload_file
from imgbed.storage.naming import resolve_mime

logger = logging.getLogger(__name__)

router = Router()


def _describe(message: Message) -> tuple[str, int | None, str | None, str]:
    """Return (file_id, size, original name, mime type) for the attachment."""
    if message.photo:
        photo = message.photo[-1]
        return photo.file_id, photo.file_size, None, "image/jpeg"
    attachment = message.document or message.video or message.audio
    file_name = getattr(attachment, "file_name", None)
    mime_type = resolve_mime(file_name, attachment.mime_type)
    return attachment.file_id, attachment.file_size, file_name, mime_type


@router.message(F.photo | F.document | F.video | F.audio)
async def media_upload(message: Message, bot: Bot, db: aiosqlite.Connection, user_setting: UserSetting, ctx) -> None:
    file_id, size, file_name, mime_type = _describe(message)
    limit = ctx.settings.max_size_mb
    if size and size > ctx.settings.max_size_bytes:
        await message.answer(f"❌ File exceeds the {limit}MB limit.")
        return

    try:
        buffer = await bot.download(file_id)
        record = await upload_file(
            db,
            ctx,
            data=buffer.read(),
            file_name=file_name,
            mime_type=mime_type,
            chat_id=user_setting.chat_id,
        )
    except ImgbedError as exc:
        logger.warning("Upload from chat %s failed: %s", user_setting.chat_id, exc)
        await message.answer(f"❌ Upload failed: {exc.message}")
        return
    except Exception as exc:
        logger.exception("Upload from chat %s failed", user_setting.chat_id)
        await message.answer(f"❌ Upload failed: {exc}")
        return

    uploaded_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    await message.answer(
        f"✅ Uploaded!\n\n\U0001f4c5 {uploaded_at}\n\U0001f517 {record.url}",
    )
