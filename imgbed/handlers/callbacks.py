"""Panel buttons: ``panel:<trigger>`` and ``category:<id>``."""

import logging

import aiosqlite
from aiogram import Bot, F, Router
from aiogram.types import CallbackQuery

from imgbed.db.models import UserSetting
from imgbed.errors import ImgbedError
from imgbed.handlers.panel import deliver
from imgbed.services.conversation import Trigger

logger = logging.getLogger(__name__)

router = Router()

_BUTTONS = {
    "switch_storage": Trigger.SWITCH_STORAGE,
    "stats": Trigger.STATS,
    "list_categories": Trigger.LIST_CATEGORIES,
    "create_category": Trigger.CREATE_CATEGORY,
    "set_suffix": Trigger.SET_SUFFIX,
    "back": Trigger.BACK,
    "close": Trigger.CLOSE,
}


async def _run(
    callback: CallbackQuery,
    bot: Bot,
    db: aiosqlite.Connection,
    user_setting: UserSetting,
    ctx,
    trigger: Trigger,
    payload=None,
) -> None:
    await callback.answer()
    chat_id = user_setting.chat_id
    try:
        outcome = await ctx.engine.handle(db, user_setting, trigger, payload)
    except ImgbedError as exc:
        logger.warning("Button %s failed for chat %s: %s", trigger.value, chat_id, exc)
        await bot.send_message(chat_id, f"❌ Operation failed: {exc.message}")
        return

    if outcome.edit_text is not None and callback.message is not None:
        await callback.message.edit_text(outcome.edit_text)
    await deliver(bot, chat_id, db, outcome, ctx)


@router.callback_query(F.data.startswith("panel:"))
async def panel_button(callback: CallbackQuery, bot: Bot, db: aiosqlite.Connection, user_setting: UserSetting, ctx) -> None:
    trigger = _BUTTONS.get(callback.data[len("panel:"):])
    if trigger is None:
        await callback.answer("Unknown action.", show_alert=True)
        return
    await _run(callback, bot, db, user_setting, ctx, trigger)


@router.callback_query(F.data.startswith("category:"))
async def category_button(callback: CallbackQuery, bot: Bot, db: aiosqlite.Connection, user_setting: UserSetting, ctx) -> None:
    try:
        category_id = int(callback.data.split(":", 1)[1])
    except ValueError:
        await callback.answer("Invalid category.", show_alert=True)
        return
    await _run(callback, bot, db, user_setting, ctx, Trigger.SELECT_CATEGORY, category_id)
