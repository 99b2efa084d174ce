import logging

import aiosqlite
from aiogram import Bot, F, Router
from aiogram.types import Message

from imgbed.db.models import UserSetting
from imgbed.errors import ImgbedError
from imgbed.handlers.panel import deliver
from imgbed.services.conversation import Trigger

logger = logging.getLogger(__name__)

router = Router()


@router.message(F.text)
async def text_message(message: Message, bot: Bot, db: aiosqlite.Connection, user_setting: UserSetting, ctx) -> None:
    try:
        outcome = await ctx.engine.handle(db, user_setting, Trigger.TEXT, message.text)
    except ImgbedError as exc:
        logger.warning("Text handling failed for chat %s: %s", user_setting.chat_id, exc)
        await message.answer(f"❌ Operation failed: {exc.message}")
        return
    await deliver(bot, message.chat.id, db, outcome, ctx)
